"""
Prompt template system for Campus Loop.

Jinja2-based templates for the tile story request. Inline defaults can be
overridden by dropping a same-named .j2 file into this directory.
"""

from pathlib import Path
from typing import Dict, Any, Optional
from jinja2 import ChoiceLoader, DictLoader, Environment, FileSystemLoader, TemplateNotFound

# Template directory
PROMPT_DIR = Path(__file__).parent

TILE_STORY_TEMPLATE = 'events/tile_story.j2'


class PromptEngine:
    """
    Jinja2-based prompt template engine.

    Loads and renders templates for LLM generation.
    """

    def __init__(self, template_dir: Optional[Path] = None):
        self.template_dir = template_dir or PROMPT_DIR

        self.env = Environment(
            loader=ChoiceLoader([
                FileSystemLoader(str(self.template_dir)),
                DictLoader(DEFAULT_TEMPLATES),
            ]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

        # Register custom filters
        self.env.filters['bullets'] = self._format_bullets

    def _format_bullets(self, items) -> str:
        """Format a list as comma-separated text, or a dash when empty."""
        items = [str(i) for i in (items or [])]
        return ", ".join(items) if items else "-"

    def render(self, template_name: str, context: Dict[str, Any]) -> str:
        """
        Render a template with context.

        Raises:
            jinja2.TemplateNotFound: If no file or inline template matches
        """
        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound:
            template = self.env.get_template(f"{template_name}.j2")
        return template.render(**context)


# =============================================================================
# INLINE DEFAULT TEMPLATES
# =============================================================================

DEFAULT_TEMPLATES = {
    TILE_STORY_TEMPLATE: '''
Write a short title and a story (4-5 sentences at most) for a "{{ tile_label }}" event on a student-life board game.
Use the reference lists below when they are relevant.

Classes: {{ references.classes | bullets }}
Food and drinks: {{ references.foods | bullets }}
Hangouts: {{ references.hangouts | bullets }}
Study: {{ references.study | bullets }}
Transport: {{ references.transport | bullets }}

Optionally offer up to {{ max_options }} choices for the player. For each choice give effects
as integer ranges [min, max] for intelligence, energy, luck, money and credits.
Realism rules for effects:
{% if credit_tile %}
- This is a faculty tile: credits may be gained, never lost.
{% else %}
- This is not a faculty tile: credits must be [0, 0].
{% endif %}
- intelligence rises with study (lectures, labs, revision) and may drop when skipping or cheating.
- energy rises with rest and drops with intense study, sleepless nights and stress.
- money rises with earnings (jobs, scholarships, winnings) and drops with spending (food, fun, transport).

Reply with JSON only, in this format:
{"title": "string", "story": "string", "options": [{"label": "string", "effects": {"intelligence": [min, max], "energy": [min, max], "luck": [min, max], "money": [min, max], "credits": [min, max]}}]}
''',
}


# Global prompt engine instance
_engine: Optional[PromptEngine] = None


def get_prompt_engine() -> PromptEngine:
    """Get or create the global prompt engine."""
    global _engine
    if _engine is None:
        _engine = PromptEngine()
    return _engine


def render_template(template_name: str, context: Dict[str, Any]) -> str:
    """Convenience function to render a template."""
    return get_prompt_engine().render(template_name, context)
