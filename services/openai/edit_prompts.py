"""Example instructions offered to users who want a starting point."""

import random
from typing import Optional

EXAMPLE_PROMPTS = (
    "Add a pair of cool sunglasses to the subject.",
    "Change the background to a beautiful beach at sunset.",
    "Make the cat wear a tiny wizard hat.",
    "Turn the photo into a black and white vintage-style image.",
    "Add a subtle flying saucer in the sky.",
    "Make it look like it's snowing lightly.",
    "Add a reflection of a futuristic cityscape in the person's glasses.",
    "Give the dog a superhero cape.",
    "Change the color of the car to a vibrant cherry red.",
    "Surround the main subject with glowing, magical butterflies.",
    "Place a steaming cup of coffee on the table.",
    "Make the sky look like a van Gogh painting.",
)


def random_example_prompt(rng: Optional[random.Random] = None) -> str:
    """Return one example prompt chosen at random."""
    return (rng or random).choice(EXAMPLE_PROMPTS)
