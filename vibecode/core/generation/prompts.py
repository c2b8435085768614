"""System prompts selected by generation type."""

from __future__ import annotations

from vibecode.common.enums import GenerationType

_HTML = (
    "You are a senior front-end engineer. Build the web page the user describes as ONE "
    "self-contained HTML document with inline <style> and <script>. Do not reference "
    "external files except well-known CDNs. Answer with JSON only: "
    '{"htmlCode": "<!DOCTYPE html>...", "description": "one sentence summary"}.'
)

_MULTI_FILE = (
    "You are a senior front-end engineer. Build the web page the user describes as a small "
    "static site. The entry point MUST be index.html; put styles in style.css and behaviour "
    "in script.js unless more files are clearly needed. Use relative paths only. Answer with "
    'JSON only: {"files": [{"path": "index.html", "content": "..."}, ...], '
    '"description": "one sentence summary"}.'
)

_VUE_PROJECT = (
    "You are a senior Vue 3 engineer. Create the project the user describes using Vite and "
    "the Composition API. Write every file with the write_file tool, one call per file, using "
    "paths relative to the project root (package.json, index.html, vite.config.js, src/...). "
    "Keep the project small and runnable. Briefly explain what you are doing between tool calls."
)

_CHAT = (
    "You are a helpful assistant inside an app builder. Answer questions about the user's "
    "application, suggest improvements and explain code. Use Markdown."
)

_AGENT = (
    "You are an autonomous product agent inside an app builder. Break the user's goal into "
    "steps, reason about each one and describe concrete changes to the application. Use Markdown."
)

SYSTEM_PROMPTS: dict[GenerationType, str] = {
    GenerationType.HTML: _HTML,
    GenerationType.MULTI_FILE: _MULTI_FILE,
    GenerationType.VUE_PROJECT: _VUE_PROJECT,
    GenerationType.CHAT: _CHAT,
    GenerationType.AGENT: _AGENT,
}

WRITE_FILE_TOOL = "write_file"

PROJECT_TOOLS: list[dict] = [
    {
        "type": "function",
        "function": {
            "name": WRITE_FILE_TOOL,
            "description": "Create or overwrite one file of the project.",
            "parameters": {
                "type": "object",
                "properties": {
                    "relative_path": {
                        "type": "string",
                        "description": "File path relative to the project root, e.g. src/App.vue",
                    },
                    "content": {"type": "string", "description": "Full file content"},
                },
                "required": ["relative_path", "content"],
            },
        },
    }
]


def system_prompt_for(generation_type: GenerationType) -> str:
    return SYSTEM_PROMPTS[generation_type]
