"""
Heat generation for solo (test) events.

Heats are groups used to batch participants who don't play head to head,
such as swimming races or fitness tests.
"""
import math
import random
from typing import List, Optional, Sequence, Tuple, TypeVar

T = TypeVar('T')


def get_heat_name(index: int) -> str:
    """
    Name of the heat at a 0-based index: A, B, ..., Z, AA, AB, ..., ZZ, AAA.
    """
    name = ''
    number = index + 1
    while number > 0:
        number, remainder = divmod(number - 1, 26)
        name = chr(65 + remainder) + name
    return name


def shuffle_registrations(registrations: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """Fisher-Yates shuffle of a copy of the registrations."""
    rng = rng or random.Random()
    shuffled = list(registrations)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def calculate_heat_count(num_registrations: int, players_per_heat: int) -> int:
    return math.ceil(num_registrations / players_per_heat)


def partition_into_heats(registrations: Sequence[T], players_per_heat: int) -> List[Tuple[str, List[T]]]:
    """Split registrations into contiguous, named heats of at most players_per_heat."""
    heats = []
    for heat_index in range(calculate_heat_count(len(registrations), players_per_heat)):
        start = heat_index * players_per_heat
        heats.append((get_heat_name(heat_index), list(registrations[start:start + players_per_heat])))
    return heats
