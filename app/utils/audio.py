# app/utils/audio.py - Audio Processing Utilities

import base64
import binascii
import logging
import struct

import numpy as np

from app.errors import DecodeFailure

logger = logging.getLogger(__name__)

REALTIME_SAMPLE_RATE = 24000  # PCM16 rate used by the realtime API

class AudioProcessor:
    """PCM16 helpers used on both legs of the relay"""

    def __init__(self):
        self.sample_width = 2  # 16-bit audio
        self.channels = 1      # Mono audio

    def decode_base64_audio(self, encoded: str) -> bytes:
        """Decode a base64 audio payload, raising DecodeFailure when malformed"""
        if not isinstance(encoded, str) or not encoded:
            raise DecodeFailure("Audio payload is empty")
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeFailure(f"Audio payload is not valid base64: {e}")

    def encode_base64_audio(self, audio_data: bytes) -> str:
        return base64.b64encode(audio_data).decode('utf-8')

    def convert_sample_rate(self, audio_data: bytes, from_rate: int, to_rate: int) -> bytes:
        """Convert audio sample rate using simple interpolation"""
        if from_rate == to_rate or not audio_data:
            return audio_data

        # Convert bytes to numpy array (16-bit PCM)
        audio_array = np.frombuffer(audio_data, dtype=np.int16)

        # Calculate the ratio and new length
        ratio = to_rate / from_rate
        new_length = int(len(audio_array) * ratio)

        # Simple linear interpolation
        old_indices = np.arange(len(audio_array))
        new_indices = np.linspace(0, len(audio_array) - 1, new_length)
        resampled = np.interp(new_indices, old_indices, audio_array.astype(np.float32))

        return resampled.astype(np.int16).tobytes()

    def create_wav_header(self, sample_rate: int, num_samples: int, num_channels: int = 1, sample_width: int = 2) -> bytes:
        """Create WAV file header"""
        byte_rate = sample_rate * num_channels * sample_width
        block_align = num_channels * sample_width
        data_size = num_samples * num_channels * sample_width
        file_size = data_size + 36

        return struct.pack(
            '<4sI4s4sIHHIIHH4sI',
            b'RIFF',        # Chunk ID
            file_size,      # File size
            b'WAVE',        # Format
            b'fmt ',        # Subchunk1 ID
            16,             # Subchunk1 size
            1,              # Audio format (PCM)
            num_channels,   # Number of channels
            sample_rate,    # Sample rate
            byte_rate,      # Byte rate
            block_align,    # Block align
            sample_width * 8,  # Bits per sample
            b'data',        # Subchunk2 ID
            data_size       # Subchunk2 size
        )

    def pcm_to_wav(self, pcm_data: bytes, sample_rate: int = REALTIME_SAMPLE_RATE) -> bytes:
        """Convert raw PCM data to WAV format"""
        num_samples = len(pcm_data) // 2  # 16-bit samples
        return self.create_wav_header(sample_rate, num_samples) + pcm_data

    def validate_pcm16(self, audio_data: bytes):
        """Raise DecodeFailure unless the buffer is playable PCM16"""
        if not audio_data:
            raise DecodeFailure("Empty audio chunk")
        if len(audio_data) % 2 != 0:
            raise DecodeFailure(f"PCM16 chunk has odd length ({len(audio_data)} bytes)")

    def validate_audio_data(self, audio_data: bytes) -> bool:
        """Boolean form of validate_pcm16"""
        try:
            self.validate_pcm16(audio_data)
        except DecodeFailure as e:
            logger.warning(f"Invalid PCM16 data: {e}")
            return False
        return True

    def get_audio_duration(self, audio_data: bytes, sample_rate: int = REALTIME_SAMPLE_RATE) -> float:
        """Calculate PCM16 duration in seconds"""
        if sample_rate <= 0:
            return 0.0
        return (len(audio_data) // 2) / sample_rate

