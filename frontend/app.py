# app.py
import logging
import os

from .event_handlers import ANALYZE_URL, TRANSCRIPTION_STRATEGY
from .ui_components import build_ui

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    logger.info(f"Connecting to Backend API at: {ANALYZE_URL}")
    logger.info(f"Transcription strategy: {TRANSCRIPTION_STRATEGY}")
    demo = build_ui()
    demo.queue().launch(
        server_name=os.getenv("GRADIO_SERVER_NAME", "0.0.0.0"),
        server_port=int(os.getenv("GRADIO_SERVER_PORT", "7860")),
    )


if __name__ == "__main__":
    main()
