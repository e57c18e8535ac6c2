"""Line item fulfillment states and the transitions allowed between them."""

from enum import Enum
from typing import Dict, Tuple

from chalicelib.utils import exceptions


class ItemState(Enum):
    NOT_STARTED = 'not-started'
    STARTED = 'started'
    FINISHED = 'finished'

    @classmethod
    def parse(cls, value) -> 'ItemState':
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace('_', '-').replace(' ', '-')
            for state in cls:
                if state.value == normalized:
                    return state
        raise exceptions.InvalidInput(f'Unknown item status={value!r}, '
                                      f'expected one of {[state.value for state in cls]}')

    @property
    def is_terminal(self) -> bool:
        return self is ItemState.FINISHED


# single forward steps only
TRANSITIONS: Dict[ItemState, Tuple[ItemState, ...]] = {
    ItemState.NOT_STARTED: (ItemState.STARTED,),
    ItemState.STARTED: (ItemState.FINISHED,),
    ItemState.FINISHED: (),
}


def can_transition(src: ItemState, dst: ItemState, force: bool = False) -> bool:
    """
    Forced transitions may only land on FINISHED, from any other state.
    """
    if force:
        return dst is ItemState.FINISHED and not src.is_terminal
    return dst in TRANSITIONS.get(src, ())
