"""VoiceBridge - realtime voice proxy for the Gemini Live API."""

__version__ = "1.0.0"
