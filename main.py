#!/usr/bin/env python3
"""
Owl Focus - Main Entry Point

A focus timer that watches the device's motion sensor during a session
and nudges you to put the device back down. Quitting early needs a
deliberate confirmation (hold to quit, or a math challenge).

Usage:
    python main.py                      # Start (or restore) a session
    python main.py --duration 45        # 45-minute session
    python main.py --quit-method hold   # Confirm quitting by holding
"""

import argparse
import logging
import random
import sys
import threading
from typing import Optional

import config
from core.controller import SessionController
from core.scheduler import ThreadScheduler
from sensors import create_motion_detector
from sinks import create_host_sinks
from tracking.session import Session, SessionState
from tracking.store import KeyValueStore

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format=config.LOG_FORMAT
)
logger = logging.getLogger(__name__)


def format_time(seconds: float) -> str:
    """Format seconds as H:MM:SS (one hour or more) or MM:SS."""
    total_seconds = int(seconds)
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    secs = total_seconds % 60

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class FocusCLI:
    """
    Terminal front end for the session controller.

    The main thread waits for the session to finish; a daemon thread
    reads commands from stdin and forwards them to the controller.
    """

    def __init__(self, controller: SessionController, quit_method: str = config.QUIT_METHOD_CAPTCHA):
        self.controller = controller
        self.quit_method = quit_method
        self.finished = threading.Event()

        controller.on_state_change = self._on_state_change
        controller.on_tick = self._on_tick
        controller.on_warning = self._on_warning
        controller.on_quit_progress = self._on_quit_progress

    # ------------------------------------------------------------------
    # Controller callbacks
    # ------------------------------------------------------------------

    def _on_state_change(self, state: SessionState, session: Optional[Session]) -> None:
        if state in (SessionState.COMPLETED, SessionState.INACTIVE):
            self.finished.set()

    def _on_tick(self, session: Session) -> None:
        status = self.controller.get_status()
        if status["state"] != SessionState.ACTIVE.value:
            return
        sys.stdout.write(
            f"\r⏱️  {format_time(status['remaining_seconds'])} remaining "
            f"({int(status['progress'] * 100)}% complete, "
            f"{status['interruption_count']} interruptions)   "
        )
        sys.stdout.flush()

    def _on_warning(self, interruption_count: int) -> None:
        print("\n\n⚠ Movement Detected!")
        print("   Your focus session is still running.")
        print("   Please put your phone back down.")
        print("   Type 'r' + Enter when you're returning, or 'q' to quit.\n")

    def _on_quit_progress(self, progress: float) -> None:
        filled = int(progress * 20)
        sys.stdout.write(f"\r   [{'#' * filled}{'.' * (20 - filled)}] {int(progress * 100)}%")
        sys.stdout.flush()

    # ------------------------------------------------------------------
    # Screens
    # ------------------------------------------------------------------

    def display_onboarding(self) -> None:
        print("\n" + "=" * 60)
        print("🦉 Owl Focus - Deep work sessions with gentle accountability")
        print("=" * 60)
        print("\nHow it works:")
        print("  • Place your phone face-up on a stable surface")
        print("  • Movement during a session triggers a gentle reminder")
        print("  • Ending early needs a deliberate confirmation")
        print("\nRequirements:")
        print("  • Motion sensor (optional - sessions still run without one)")
        print("  • Notifications permission (optional)")
        print("\n" + "=" * 60)

    def display_welcome(self) -> None:
        print(f"\n💭 \"{random.choice(config.MOTIVATIONAL_QUOTES)}\"")

    def display_summary(self) -> None:
        session = self.controller.session
        print("\n\n" + "=" * 60)
        print("✨ Session Complete! Great job staying focused!")
        print("=" * 60)
        if session:
            print(f"\n⏱️  Focus Time: {format_time(session.duration)}")
            print(f"⚠  Interruptions: {session.interruption_count}")
            if session.interruption_count == 0:
                print("\n🏆 Perfect session!")
        print("\n" + "=" * 60 + "\n")

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    def run(self, duration_seconds: Optional[float] = None) -> None:
        if self.controller.showing_onboarding:
            self.display_onboarding()
            self.controller.complete_onboarding()

        self.controller.restore_session()

        if self.controller.state == SessionState.COMPLETED:
            self.display_summary()
            self.controller.start_new_session()
            return

        if self.controller.state == SessionState.INACTIVE:
            self.display_welcome()
            if duration_seconds is not None:
                self.controller.set_selected_duration(duration_seconds)
            result = self.controller.start_session()
            if not result["success"]:
                print(f"❌ {result['error']}")
                return
            minutes = int(self.controller.session.duration // 60)
            print(f"\n📚 {minutes}-minute focus session started. Please avoid your phone.")
        else:
            print("\n📚 Restored your running focus session.")

        print("   Commands: 'q' quit, 'r' return after a warning, "
              "'b'/'f' simulate background/foreground\n")

        listener = threading.Thread(target=self._command_listener, daemon=True)
        listener.start()

        self.finished.clear()
        if self.controller.state not in (SessionState.COMPLETED, SessionState.INACTIVE):
            while not self.finished.wait(timeout=0.5):
                pass

        if self.controller.state == SessionState.COMPLETED:
            self.display_summary()
            self.controller.start_new_session()
        else:
            print("\n\n👋 Session ended early. Come back when you're ready.")

    def _command_listener(self) -> None:
        try:
            while not self.finished.is_set():
                command = input().strip().lower()
                if command == "q":
                    self.controller.begin_quit()
                    self._confirm_quit()
                elif command == "r":
                    self.controller.resume_session()
                elif command == "b":
                    self.controller.enter_background()
                elif command == "f":
                    self.controller.enter_foreground()
        except (EOFError, OSError):
            pass
        except Exception as e:
            logger.debug(f"Command listener error: {e}")

    def _confirm_quit(self) -> None:
        session = self.controller.session
        if self.controller.state != SessionState.QUITTING or session is None:
            return

        print("\n\nAre you sure? You're doing great! Consider going back to your focus session.")
        print(f"   Time focused: {format_time(session.elapsed_time())}")
        print(f"   Interruptions: {session.interruption_count}")

        if self.quit_method == config.QUIT_METHOD_HOLD:
            self._hold_to_quit()
        else:
            self._solve_to_quit()

    def _hold_to_quit(self) -> None:
        while self.controller.state == SessionState.QUITTING:
            print("\nPress Enter to start holding (type 'back' to return to the session).")
            if input().strip().lower() == "back":
                self.controller.resume_session()
                return
            print("Holding... press Enter to let go.")
            self.controller.start_hold_to_quit()
            input()
            if self.controller.state != SessionState.QUITTING:
                return
            self.controller.cancel_hold_to_quit()
            print("\n   Released - hold for the full 5 seconds to quit.")

    def _solve_to_quit(self) -> None:
        while self.controller.state == SessionState.QUITTING:
            question = self.controller.get_status()["captcha_question"]
            answer = input(f"\nSolve to confirm quitting: {question} (or 'back'): ").strip()
            if answer.lower() == "back":
                self.controller.resume_session()
                return
            if not self.controller.validate_captcha(answer):
                print("   Incorrect answer")


def main() -> None:
    """Parse arguments, wire the controller to this host and run a session."""
    parser = argparse.ArgumentParser(
        description="Owl Focus - motion-aware focus timer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                      Start the last used duration
  python main.py --duration 45        Start a 45-minute session
  python main.py --quit-method hold   Confirm quitting by holding
        """
    )
    parser.add_argument(
        "--duration",
        type=float,
        help="Session length in minutes (presets: "
             + ", ".join(label for label, _ in config.DURATION_PRESETS) + ")",
    )
    parser.add_argument(
        "--quit-method",
        choices=[config.QUIT_METHOD_CAPTCHA, config.QUIT_METHOD_HOLD],
        default=config.QUIT_METHOD_CAPTCHA,
        help="How to confirm ending a session early",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Disable sounds, speech, notifications and the live status file",
    )
    args = parser.parse_args()

    if args.duration is not None and args.duration <= 0:
        parser.error("--duration must be positive")

    scheduler = ThreadScheduler()
    controller = SessionController(
        store=KeyValueStore(config.STORE_FILE),
        sinks=create_host_sinks(headless=args.headless),
        motion_detector=create_motion_detector(dispatch=scheduler.call_soon),
        scheduler=scheduler,
    )
    cli = FocusCLI(controller, quit_method=args.quit_method)

    try:
        cli.run(args.duration * 60 if args.duration is not None else None)
    except KeyboardInterrupt:
        # The persisted snapshot survives; the next launch restores the session
        print("\n\n⏸️  Exiting - your session will resume next time.")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"\nFatal error: {e}")
        sys.exit(1)
    finally:
        controller.shutdown()
        scheduler.shutdown()


if __name__ == "__main__":
    main()
