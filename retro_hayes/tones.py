"""Call progress and DTMF tones: a silent backend and a PyAudio speaker."""

import logging
import threading
import time

logger = logging.getLogger(__name__)

SAMPLE_RATE = 44100
VOLUME = 0.25

DIAL_TONE = (350, 440)
RING_TONE = (440, 480)
BUSY_TONE = (480, 620)

# key: (column Hz, row Hz)
DTMF = {
    "1": (1209, 697), "2": (1336, 697), "3": (1477, 697), "A": (1633, 697),
    "4": (1209, 770), "5": (1336, 770), "6": (1477, 770), "B": (1633, 770),
    "7": (1209, 852), "8": (1336, 852), "9": (1477, 852), "C": (1633, 852),
    "*": (1209, 941), "0": (1336, 941), "#": (1477, 941), "D": (1633, 941),
}

KEYPRESS_SECONDS = 0.150
INTERKEY_SECONDS = 0.050
DIAL_TONE_SECONDS = 0.250


def tone_samples(freqs, seconds: float, rate: int = SAMPLE_RATE, volume: float = VOLUME):
    """Sum of sine waves as float32 samples in -1..1."""
    import numpy as np

    t = np.arange(int(rate * seconds), dtype=np.float32) / float(rate)
    wave = np.zeros_like(t)
    for f in freqs:
        wave += np.sin(2.0 * np.pi * f * t)
    if freqs:
        wave *= volume / len(freqs)
    return wave.astype(np.float32)


class NullTones:
    """Headless tone generator; every call returns immediately."""

    def dial(self, number: str, comma_pause: float = 2.0) -> None:
        logger.debug(f"Dial tones for {number}")

    def ring(self) -> None:
        pass

    def busy(self) -> None:
        pass

    def carrier(self) -> None:
        pass

    def close(self) -> None:
        pass


class AudioTones(NullTones):
    """
    Tones through the default audio output.

    dial() blocks for the length of the dialing sounds; ring/busy/carrier
    play in the background.
    """

    def __init__(self, rate: int = SAMPLE_RATE, speaker_volume=lambda: 2):
        import pyaudio

        self.rate = rate
        self.speaker_volume = speaker_volume
        self._lock = threading.Lock()
        self._audio = pyaudio.PyAudio()
        self._stream = self._audio.open(
            format=pyaudio.paFloat32,
            channels=1,
            rate=rate,
            output=True,
        )
        logger.info("Audio tones enabled")

    def _play(self, freqs, seconds: float) -> None:
        volume = VOLUME * max(1, self.speaker_volume()) / 3.0
        samples = tone_samples(freqs, seconds, self.rate, volume)
        with self._lock:
            self._stream.write(samples.tobytes())

    def _silence(self, seconds: float) -> None:
        self._play((), seconds)

    def _background(self, *steps) -> None:
        def run():
            for freqs, seconds in steps:
                self._play(freqs, seconds)
        threading.Thread(target=run, daemon=True).start()

    def dial(self, number: str, comma_pause: float = 2.0) -> None:
        self._play(DIAL_TONE, DIAL_TONE_SECONDS)
        for key in number.upper():
            if key == ",":
                time.sleep(comma_pause)
                continue
            freqs = DTMF.get(key)
            if freqs is None:
                continue
            self._play(freqs, KEYPRESS_SECONDS)
            self._silence(INTERKEY_SECONDS)

    def ring(self) -> None:
        self._background((RING_TONE, 2.0))

    def busy(self) -> None:
        self._background((BUSY_TONE, 0.5), ((), 0.5), (BUSY_TONE, 0.5), ((), 0.5))

    def carrier(self) -> None:
        self._background(((2100,), 0.5), ((1200, 2400), 1.0))

    def close(self) -> None:
        with self._lock:
            self._stream.stop_stream()
            self._stream.close()
            self._audio.terminate()


def get_tones(enabled: bool = False, speaker_volume=lambda: 2) -> NullTones:
    """Return the audio backend when requested, otherwise the silent one."""
    if enabled:
        return AudioTones(speaker_volume=speaker_volume)
    return NullTones()
