"""Random environment names for `generate_random_name`."""

import logging
import random
from collections.abc import Callable

from .errors import TerraformResourceError

logger = logging.getLogger(__name__)

ADJECTIVES = [
    "amber", "ancient", "autumn", "bold", "brave", "bright", "calm", "clever",
    "cool", "crimson", "damp", "dawn", "eager", "fancy", "fierce", "gentle",
    "golden", "hidden", "hollow", "icy", "jolly", "lively", "lucky", "misty",
    "noble", "polished", "proud", "quiet", "rapid", "silent", "snowy", "swift",
]

NOUNS = [
    "badger", "breeze", "brook", "canyon", "cedar", "cloud", "comet", "coral",
    "dune", "falcon", "fern", "firefly", "forest", "glacier", "harbor", "heron",
    "island", "lagoon", "meadow", "moon", "otter", "pine", "prairie", "reef",
    "river", "sparrow", "summit", "thunder", "tundra", "valley", "willow", "wolf",
]

MAX_ATTEMPTS = 100


def random_name(rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    return f"{rng.choice(ADJECTIVES)}-{rng.choice(NOUNS)}"


def generate_unique_name(exists: Callable[[str], bool], rng: random.Random | None = None) -> str:
    """
    Pick a random name for which `exists` returns False.

    Raises:
        TerraformResourceError: If no free name turns up after MAX_ATTEMPTS tries
    """
    rng = rng or random.Random()
    for _ in range(MAX_ATTEMPTS):
        name = random_name(rng)
        if not exists(name):
            logger.info(f"Generated environment name '{name}'")
            return name
    raise TerraformResourceError(
        f"Failed to generate a unique environment name after {MAX_ATTEMPTS} attempts"
    )
