"""Example prompts offered while a session has no history."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ExamplePrompt:
    text: str
    value: str


EXAMPLE_PROMPTS: tuple[ExamplePrompt, ...] = (
    ExamplePrompt(
        text="What is the maximum speed offered for the 20GB Data Plan?",
        value="What is the maximum speed offered for the 20GB Data Plan?",
    ),
    ExamplePrompt(
        text="What is the monthly pricing for the 21Mbps 20GB Data Plan?",
        value="What is the monthly pricing for the 21Mbps 20GB Data Plan?",
    ),
    ExamplePrompt(
        text="How can customers subscribe to the 'care free all you can talk' service?",
        value="How can customers subscribe to the 'care free all you can talk' service?",
    ),
)


__all__ = ["EXAMPLE_PROMPTS", "ExamplePrompt"]
