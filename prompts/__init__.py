"""
Prompts package for the portfolio tracker.
Contains the AI analysis prompt templates as plain text files.
"""

import os
from typing import Dict

# Cache for loaded prompts
_prompt_cache: Dict[str, str] = {}

PORTFOLIO_ANALYSIS_TEMPLATE = "portfolio_analysis.txt"
STOCK_ANALYSIS_TEMPLATE = "stock_analysis.txt"


def load_prompt(filename: str) -> str:
    """
    Load a prompt template from a text file.

    Args:
        filename: Name of the template file (e.g., 'stock_analysis.txt')

    Returns:
        Template content as string
    """
    if filename in _prompt_cache:
        return _prompt_cache[filename]

    prompt_dir = os.path.dirname(os.path.abspath(__file__))
    filepath = os.path.join(prompt_dir, filename)

    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            content = f.read()
    except FileNotFoundError:
        raise FileNotFoundError(f"Prompt file not found: {filepath}")

    _prompt_cache[filename] = content
    return content


def render_prompt(filename: str, **fields) -> str:
    """Fill a template's named `{placeholders}`."""
    return load_prompt(filename).format(**fields).strip()


def clear_prompt_cache():
    """Clear the prompt cache. Useful for reloading templates during development."""
    _prompt_cache.clear()
