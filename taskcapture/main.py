"""Main application entry point for taskcapture."""

import sys
import time
import argparse
import logging
from pathlib import Path

from rich.console import Console
from rich.prompt import Confirm

from .capture.base import SurfaceKind
from .capture.synthetic import SyntheticCaptureBackend
from .config import TaskCaptureConfig
from .recording.guard import NavigationGuard
from .services.recording_service import RecordingService
from .ui.console import NoticeConsole, render_status

logger = logging.getLogger(__name__)


class Recorder:
    """Runs one recording from the terminal with the synthetic capture backend."""

    def __init__(self, config_path: str, log_level: str = None):
        # Load configuration
        self.config = TaskCaptureConfig(config_path)
        # Set up logging (command line overrides config)
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.console = Console()
        self.service = None
        self.notice_console = None

    def init(self, window: bool = False, microphone: bool = False):
        logger.info("Initializing services...")

        backend = SyntheticCaptureBackend(
            surface_kind=SurfaceKind.WINDOW if window else SurfaceKind.MONITOR,
            use_microphone=microphone or self.config.get('capture.microphone', False),
        )
        guard = NavigationGuard(confirm=lambda prompt: Confirm.ask(prompt, console=self.console))

        self.notice_console = NoticeConsole(self.console)
        self.service = RecordingService(self.config, backend, navigation_guard=guard)

    def run(self, duration: int, owner_id: str = None, submit: bool = False,
            time_limit_minutes: float = None) -> int:
        result = self.service.start_recording(time_limit_minutes)
        if not result["success"]:
            return 1

        deadline = time.monotonic() + duration if duration else None
        try:
            while True:
                events = self.service.process_events(timeout=0.2)
                if "finished" in events:
                    result = events["finished"]
                    break
                if deadline and time.monotonic() >= deadline:
                    result = self.service.stop_recording()
                    break
        except KeyboardInterrupt:
            if self.service.confirm_leave():
                self.console.print("Recording abandoned.")
                return 130
            result = self.service.stop_recording()

        if not result["success"]:
            self.console.print(render_status(self.service.get_status()))
            return 1

        saved = self.service.save_recording()
        if saved["success"]:
            self.console.print(f"Saved to {saved['recording_file']}")

        if submit:
            submission = self.service.submit_recording(owner_id or "anonymous")
            if not submission["success"]:
                self.console.print(render_status(self.service.get_status()))
                return 1

        self.console.print(render_status(self.service.get_status()))
        return 0

    def cleanup(self):
        if self.service:
            self.service.teardown()
        if self.notice_console:
            self.notice_console.close()


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/taskcapture.log')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Notices already cover the rest
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("taskcapture starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def main() -> None:
    """Main entry point for taskcapture."""
    parser = argparse.ArgumentParser(
        description="taskcapture - record a task attempt and submit it for review"
    )

    parser.add_argument(
        "--config",
        type=str,
        default="taskcapture.yaml",
        help="Path to configuration YAML file (default: taskcapture.yaml)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (overrides config)"
    )

    parser.add_argument(
        "--duration",
        type=int,
        default=10,
        help="Seconds to record before stopping; 0 records until the time limit (default: 10)"
    )

    parser.add_argument(
        "--time-limit",
        type=float,
        help="Task time limit in minutes (overrides config)"
    )

    parser.add_argument(
        "--window",
        action="store_true",
        help="Simulate sharing a single window instead of the entire screen"
    )

    parser.add_argument(
        "--microphone",
        action="store_true",
        help="Record audio from the default microphone"
    )

    parser.add_argument(
        "--submit",
        action="store_true",
        help="Submit the recording after it completes"
    )

    parser.add_argument(
        "--owner",
        type=str,
        help="Owner ID the submission is stored under"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="taskcapture v0.1.0"
    )

    args = parser.parse_args()

    exit_code = 1
    recorder = None
    try:
        recorder = Recorder(args.config, args.log_level)
        recorder.init(window=args.window, microphone=args.microphone)
        exit_code = recorder.run(args.duration, owner_id=args.owner, submit=args.submit,
                                 time_limit_minutes=args.time_limit)
    except KeyboardInterrupt:
        print("\nGoodbye!")
        exit_code = 130
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        logging.error(f"Application error: {e}")
    finally:
        if recorder:
            recorder.cleanup()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
