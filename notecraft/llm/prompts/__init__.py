"""
Prompt Management Module

Loads LLM prompts from the .txt files in this directory so prompt wording can
change without touching the engine code.
"""

from __future__ import annotations

from pathlib import Path

PROMPTS_DIR = Path(__file__).parent


class PromptLoader:
    """Load and cache prompt templates from files"""

    def __init__(self):
        self._cache: dict[str, str] = {}

    def load_prompt(self, prompt_name: str) -> str:
        """
        Load a prompt template from file.

        Args:
            prompt_name: Name of the prompt file (without .txt extension)

        Returns:
            Prompt template string
        """
        if prompt_name not in self._cache:
            prompt_path = PROMPTS_DIR / f"{prompt_name}.txt"

            if not prompt_path.exists():
                raise FileNotFoundError(f"Prompt file not found: {prompt_path}")

            with open(prompt_path, encoding="utf-8") as f:
                self._cache[prompt_name] = f.read()

        return self._cache[prompt_name]


# Global instance
_loader = PromptLoader()


def _title_line(title: str | None, trailing: str) -> str:
    return f"Title: {title}{trailing}" if title else ""


def get_continuation_messages(
    title: str | None, source_text: str, tail: str
) -> list[dict[str, str]]:
    """System + user messages asking the model for the missing tail of the notes."""
    user = _loader.load_prompt("continuation_user").format(
        title_line=_title_line(title, "\n\n"),
        source_text=source_text,
        tail=tail,
    )
    return [
        {"role": "system", "content": _loader.load_prompt("continuation_system")},
        {"role": "user", "content": user},
    ]


def get_study_pack_messages(title: str | None, source_text: str) -> list[dict[str, str]]:
    user = _loader.load_prompt("study_pack_user").format(
        title_line=_title_line(title, "\n"),
        source_text=source_text,
    )
    return [
        {"role": "system", "content": _loader.load_prompt("study_pack_system")},
        {"role": "user", "content": user},
    ]
