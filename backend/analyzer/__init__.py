"""FastAPI service relaying patient audio and transcripts to Gemini."""
