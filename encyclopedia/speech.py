"""
Speech engine contracts consumed by the orchestrator.

The recognizer and synthesizer are platform engines living outside this
package; only the capabilities listed here are used.
"""

from typing import Protocol


class SpeechRecognizer(Protocol):
    """Start/stop listening. Transcripts are pushed back to the orchestrator."""

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...


class SpeechSynthesizer(Protocol):
    """Speak text, cancel, report speaking state."""

    @property
    def is_speaking(self) -> bool:
        ...

    def speak(self, text: str) -> None:
        ...

    def cancel(self) -> None:
        ...

