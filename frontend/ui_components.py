# ui_components.py

import html
import logging
import os

import gradio as gr

# Import local modules: CSS, event handlers, and constants
from .css_styles import css
from .event_handlers import (ANALYSIS_STRATEGIES, ICON_ANALYSIS, ICON_AUDIO,
                             ICON_INFO, ICON_REFRESH, ICON_UPLOAD,
                             ICON_WARNING, STRATEGY_REMOTE,
                             TRANSCRIPTION_STRATEGY, dismiss_error,
                             handle_file_selected, handle_reset,
                             process_audio, remove_file)

# --- Logger Setup ---
logger = logging.getLogger(__name__)
# Ensure logging is configured externally (e.g., in app.py)

DISCLAIMER_TEXT = (
    f"{ICON_WARNING} **Medical Disclaimer:** This AI tool is for informational purposes only. "
    "Always consult a qualified healthcare professional."
)

STRATEGY_CHOICES = [
    ("Gemini transcribes the uploaded audio", "remote"),
    ("Transcribe locally, send only the text", "local"),
]


def build_ui() -> gr.Blocks:
    """
    Builds the Gradio Blocks UI, including layout, components, state
    and event listeners.

    Returns:
        The constructed gr.Blocks demo object.
    """
    logger.info("Building Gradio UI layout and components...")
    default_strategy = (
        TRANSCRIPTION_STRATEGY if TRANSCRIPTION_STRATEGY in ANALYSIS_STRATEGIES else STRATEGY_REMOTE
    )

    with gr.Blocks(css=css, title="Medical Audio Analyzer") as demo:
        gr.Markdown("# 🩺 Medical Audio Analyzer")
        gr.Markdown("Upload audio files for AI-powered medical analysis.")
        gr.Markdown(DISCLAIMER_TEXT, elem_id="disclaimer")

        # --- States ---
        # True while an analysis request is running (single flight)
        is_processing_state = gr.State(False)

        # --- Upload Section ---
        gr.Markdown(f"### Step 1: {ICON_UPLOAD} Upload Audio File")
        with gr.Row(equal_height=False):
            with gr.Column(scale=2):
                file_input = gr.File(
                    label="MP3, WAV or WebM",
                    file_types=["audio"],
                    type="filepath",
                    elem_id="audio_file_input",
                )
                file_info = gr.Markdown(f"*{ICON_INFO} No file selected.*", elem_id="file_info")
                remove_btn = gr.Button("✖ Remove file", variant="secondary", size="sm")
            with gr.Column(scale=1):
                audio_preview = gr.Audio(
                    label=f"{ICON_AUDIO} Preview", type="filepath", interactive=False,
                    elem_id="audio_preview",
                )
                strategy_radio = gr.Radio(
                    choices=STRATEGY_CHOICES,
                    value=default_strategy,
                    label="Transcription",
                    elem_id="strategy_radio",
                )

        # --- Analysis Section ---
        gr.Markdown(f"### Step 2: {ICON_ANALYSIS} Analyze")
        analyze_btn = gr.Button(f"{ICON_ANALYSIS} Analyze Audio", variant="primary", elem_id="analyze_btn")
        status_output = gr.Textbox(
            label="Status", value=f"{ICON_INFO} Idle", interactive=False, max_lines=1,
            elem_id="overall_status",
        )
        with gr.Row(elem_classes="error-banner-row"):
            error_banner = gr.Markdown("", visible=False, elem_classes="error-banner")
            dismiss_btn = gr.Button("Dismiss", size="sm", scale=0, min_width=90)

        # --- Results Section ---
        gr.Markdown("---")
        analysis_display = gr.Markdown("", elem_id="analysis_display")
        with gr.Accordion("View Transcript", open=False):
            transcript_display = gr.Textbox(
                label="Transcript", interactive=False, lines=6,
                placeholder="Transcript appears here...", elem_id="transcript_display",
            )
        reset_btn = gr.Button(f"{ICON_REFRESH} New Analysis", variant="secondary")

        _build_footer()

        # --- Attach Event Listeners ---
        logger.info("Attaching Gradio event listeners...")
        file_input.change(
            fn=handle_file_selected,
            inputs=[file_input],
            outputs=[file_info, audio_preview, error_banner, transcript_display, analysis_display],
            show_progress="hidden",
        )
        remove_btn.click(
            fn=remove_file,
            inputs=None,
            outputs=[file_input, file_info, audio_preview, error_banner, transcript_display],
            show_progress="hidden",
        )
        analyze_btn.click(
            fn=process_audio,
            inputs=[file_input, strategy_radio, is_processing_state],
            outputs=[
                is_processing_state, status_output, error_banner,
                transcript_display, analysis_display, analyze_btn,
            ],
            show_progress="minimal",
            api_name="analyze_audio",
        )
        dismiss_btn.click(fn=dismiss_error, inputs=None, outputs=[error_banner], show_progress="hidden")
        reset_btn.click(
            fn=handle_reset,
            inputs=None,
            outputs=[
                file_input, file_info, audio_preview, error_banner,
                transcript_display, analysis_display, status_output,
            ],
            show_progress="hidden",
        )
        logger.info("Event listeners attached.")

    logger.info("Gradio UI build complete.")
    return demo


def _build_footer():
    """Builds the footer markdown components."""
    backend_url_for_footer = os.getenv("BACKEND_BASE_URL", "http://localhost:8000").rstrip('/')

    gr.Markdown("---")
    gr.Markdown(f"**Backend API:** Connecting to `{html.escape(backend_url_for_footer)}`")
    gr.Markdown(
        f"🔗 API Docs: [{html.escape(backend_url_for_footer)}/docs]({html.escape(backend_url_for_footer)}/docs)"
    )
    gr.Markdown("*For informational purposes only. Always consult a healthcare professional.*")
