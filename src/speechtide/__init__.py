"""speechtide -- offline SenseVoice transcription engine for voice dictation."""

__version__ = '0.1.0'
