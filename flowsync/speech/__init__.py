from flowsync.speech.elevenlabs import SpeechClient, SynthesisError, VoiceSettings

__all__ = ["SpeechClient", "SynthesisError", "VoiceSettings"]
