from taste_machine.models.base import Base
from taste_machine.models.dirty_marker import DirtyMarker
from taste_machine.models.fire_event import FireEvent
from taste_machine.models.nft_rating import NftRating
from taste_machine.models.slider_event import SliderEvent
from taste_machine.models.vote_event import VoteEvent

__all__ = [
    "Base",
    "DirtyMarker",
    "FireEvent",
    "NftRating",
    "SliderEvent",
    "VoteEvent",
]
