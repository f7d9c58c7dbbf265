# Voice provider module
from .provider import VoiceCallProvider, HttpVoiceProvider

__all__ = ['VoiceCallProvider', 'HttpVoiceProvider']
