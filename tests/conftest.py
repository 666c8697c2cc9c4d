"""
Shared fixtures: a small three-level configuration and stub collaborators.
"""

import json

import pytest

from game_config import GameConfig, ReferenceLists


# Level 1: perimeter board, path [s, f, c, n]
LEVEL_1_BOARD = {'top': 'n.s', 'right': 'c', 'bottom': '...', 'left': 'f'}
# Level 2: ASCII board, path [s, c, r, f]
LEVEL_2_BOARD = "s.c\n. .\nf.r"
# Level 3: perimeter board with only start and neutral tiles (8 tiles)
LEVEL_3_BOARD = {'top': 'nnn', 'right': 'n', 'bottom': 'snn', 'left': 'n'}


def make_config_dict(**overrides):
    data = {
        'stats': {
            'intelligence': {'initial': 50, 'minimum': 0, 'maximum': 100},
            'energy': {'initial': 80, 'minimum': 0, 'maximum': 100},
            'luck': {'initial': 10, 'minimum': 0, 'maximum': 50},
            'money': {'initial': 200, 'minimum': -500, 'maximum': 1000},
        },
        'credits': {'initial': 0, 'maximum': 30},
        'dice': {'minimum': 1, 'maximum': 6},
        'levels': {
            'initial': 1,
            'maximum': 3,
            1: {'label': 'Year 1', 'credits_to_advance': 3, 'board': LEVEL_1_BOARD},
            2: {'label': 'Year 2', 'credits_to_advance': 6, 'board': LEVEL_2_BOARD},
            3: {'label': 'Graduation', 'board': LEVEL_3_BOARD},
        },
        'boxes': {
            's': {'label': 'Start'},
            'c': {'label': 'Faculty', 'icon': 'book'},
            'f': {'label': 'Food'},
        },
    }
    data.update(overrides)
    return data


@pytest.fixture
def config_dict():
    return make_config_dict()


@pytest.fixture
def config():
    return GameConfig.from_dict(make_config_dict())


@pytest.fixture
def references():
    return ReferenceLists.from_dict({
        'classes': ['Algebra', 'Physics'],
        'foods': ['Pizza place'],
        'hangouts': ['the park'],
        'study': ['library'],
        'transport': ['tram'],
    })


class StubEnhancer:
    """Enhancer double: returns a fixed value or raises."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.requests = []

    def enhance(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def story_with_options():
    return json.dumps({
        'title': 'Exam week',
        'story': 'The library is packed.',
        'options': [
            {
                'label': 'Study all night',
                'effects': {
                    'intelligence': [5, 5], 'energy': [-10, -10],
                    'luck': [0, 0], 'money': [0, 0], 'credits': [2, 2],
                },
            },
            {
                'label': 'Go to sleep',
                'effects': {
                    'intelligence': [0, 0], 'energy': [10, 10],
                    'luck': [0, 0], 'money': [0, 0], 'credits': [0, 0],
                },
            },
        ],
    })
