"""Prompt template loading."""

from pathlib import Path


def load_prompt(prompts_dir: Path, filename: str) -> str:
    """Load a prompt template from the prompts directory."""
    prompt_path = Path(prompts_dir) / filename
    if not prompt_path.exists():
        raise FileNotFoundError(f"Prompt file not found: {prompt_path}")

    with open(prompt_path, "r", encoding="utf-8") as f:
        return f.read().strip()
