"""
Narrative enhancement for Campus Loop.

Bridges tile context -> prompt -> LLM -> structured enhancement
(title, story, player options with effect ranges).

Best-effort only: any failure yields None and the engine falls back to
the deterministic event outcome.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import json
import logging
import math
import random

from board import TileType
from game_config import TRACKED_QUANTITIES
from llm_provider import EnhancementError, LLMProvider, create_llm_provider
from prompts import TILE_STORY_TEMPLATE, render_template

logger = logging.getLogger(__name__)

MAX_OPTIONS = 3
STORY_KEYS = ('story', 'description', 'content', 'text')
OPTION_KEYS = ('options', 'choices')


# =============================================================================
# ENHANCEMENT MODEL
# =============================================================================

@dataclass(frozen=True)
class EnhancementRequest:
    """What the narrative service gets to see about a landing."""
    tile_type: str
    tile_label: str
    references: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def credit_tile(self) -> bool:
        return self.tile_type == TileType.CREDIT.value


@dataclass(frozen=True)
class EnhancementOption:
    """A player choice with an independent [min, max] range per quantity."""
    label: str
    effects: Dict[str, Tuple[int, int]] = field(default_factory=dict)

    def sample(self, rng: random.Random) -> Dict[str, int]:
        """Draw one value per tracked quantity, uniformly from its range."""
        result = {}
        for key in TRACKED_QUANTITIES:
            low, high = self.effects.get(key, (0, 0))
            result[key] = rng.randint(low, high)
        return result

    def to_dict(self) -> Dict[str, Any]:
        return {'label': self.label, 'effects': {k: list(v) for k, v in self.effects.items()}}


@dataclass(frozen=True)
class Enhancement:
    title: Optional[str] = None
    story: Optional[str] = None
    options: Tuple[EnhancementOption, ...] = ()

    @property
    def usable(self) -> bool:
        return bool(self.title or self.story or self.options)


# =============================================================================
# RESPONSE PARSING
# =============================================================================

def _strip_code_fence(text: str) -> str:
    s = str(text).strip()
    if s.startswith('```'):
        s = s[3:]
        if s[:4].lower() == 'json':
            s = s[4:]
        if s.rstrip().endswith('```'):
            s = s.rstrip()[:-3]
    return s.strip()


def _load_json_object(text: str) -> Optional[Dict[str, Any]]:
    cleaned = _strip_code_fence(text)
    try:
        obj = json.loads(cleaned)
    except ValueError:
        # Fall back to the outermost {...} slice of arbitrary text
        i, j = cleaned.find('{'), cleaned.rfind('}')
        if i == -1 or j <= i:
            return None
        try:
            obj = json.loads(cleaned[i:j + 1])
        except ValueError:
            return None
    return obj if isinstance(obj, dict) else None


def _parse_range(value: Any) -> Tuple[int, int]:
    """[min, max] -> (min, max). Anything malformed is (0, 0)."""
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return (0, 0)
    bounds = []
    for v in value:
        if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v):
            return (0, 0)
        bounds.append(int(round(v)))
    low, high = sorted(bounds)
    return (low, high)


def _parse_option(raw: Any, index: int) -> Optional[EnhancementOption]:
    if not isinstance(raw, dict):
        return None
    label = raw.get('label')
    if not isinstance(label, str) or not label.strip():
        label = f"Option {index + 1}"
    effects_raw = raw.get('effects')
    effects = {}
    if isinstance(effects_raw, dict):
        effects = {key: _parse_range(effects_raw.get(key)) for key in TRACKED_QUANTITIES}
    return EnhancementOption(label=label.strip(), effects=effects)


def parse_enhancement(text: Optional[str], max_options: int = MAX_OPTIONS) -> Optional[Enhancement]:
    """
    Parse a model response into an Enhancement.

    Returns:
        Enhancement, or None when the text carries nothing usable
    """
    if not text:
        return None
    data = _load_json_object(text)
    if data is None:
        return None

    title = data.get('title') if isinstance(data.get('title'), str) else None
    story = next(
        (data[k] for k in STORY_KEYS if isinstance(data.get(k), str) and data[k].strip()),
        None
    )

    raw_options = next((data[k] for k in OPTION_KEYS if isinstance(data.get(k), list)), [])
    options = []
    for i, raw in enumerate(raw_options[:max_options]):
        option = _parse_option(raw, i)
        if option is not None:
            options.append(option)

    enhancement = Enhancement(
        title=title.strip() if title and title.strip() else None,
        story=story.strip() if story else None,
        options=tuple(options),
    )
    return enhancement if enhancement.usable else None


# =============================================================================
# ENHANCER
# =============================================================================

class NarrativeEnhancer:
    """
    Narrow best-effort seam: enhance(request) -> Optional[Enhancement].

    Never raises for service or parsing problems.
    """

    def __init__(self, llm_provider: Optional[LLMProvider] = None, max_options: int = MAX_OPTIONS):
        self.llm = llm_provider or create_llm_provider('ollama')
        self.max_options = max_options

    def build_prompt(self, request: EnhancementRequest) -> str:
        return render_template(TILE_STORY_TEMPLATE, {
            'tile_label': request.tile_label,
            'credit_tile': request.credit_tile,
            'references': request.references,
            'max_options': self.max_options,
        })

    def enhance(self, request: EnhancementRequest) -> Optional[Enhancement]:
        try:
            prompt = self.build_prompt(request)
            text = self.llm.generate(prompt)
        except EnhancementError as e:
            logger.warning(f"Narrative service unavailable for '{request.tile_label}': {e}")
            return None
        except Exception as e:
            # Template or provider bug must not reach the player
            logger.warning(f"Narrative enhancement failed for '{request.tile_label}': {e}")
            return None

        enhancement = parse_enhancement(text, self.max_options)
        if enhancement is None:
            logger.warning(f"Unusable narrative response for '{request.tile_label}'")
        return enhancement
