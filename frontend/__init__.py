"""Gradio client for the Medical Audio Analyzer API."""
