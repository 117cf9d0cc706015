import os
import wave

import numpy as np


def flip_sign(pcm_data):
    """
    Toggle 8-bit PCM between signed and unsigned.

    GBA sound samples are signed; WAV and AVI 8-bit PCM is unsigned.
    XORing the top bit maps one onto the other and is its own inverse.
    """
    samples = np.frombuffer(bytes(pcm_data), dtype=np.uint8)
    return (samples ^ 0x80).tobytes()


def write_wav(pcm_data, output_path, rate, bits=8, channels=1):
    """Write already-converted (unsigned 8-bit) PCM to a WAV file."""
    out_dir = os.path.dirname(output_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)

    with wave.open(output_path, 'wb') as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(bits // 8)
        wav_file.setframerate(rate)
        wav_file.writeframes(pcm_data)
