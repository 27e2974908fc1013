"""
Desktop implementation of the host sinks.

Cross-platform: macOS (afplay, say, osascript, caffeinate),
Windows (winsound, pyttsx3, PowerShell), Linux (pyttsx3, notify-send,
systemd-inhibit).
Missing tools degrade to a logged no-op; nothing here raises into the
controller.
"""

import json
import logging
import os
import shutil
import subprocess
import sys
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional

import pyttsx3

import config
from sinks.base import HostSinks, LiveActivitySnapshot

logger = logging.getLogger(__name__)

_MACOS_WARNING_SOUND = "/System/Library/Sounds/Funk.aiff"
_MACOS_SUCCESS_SOUND = "/System/Library/Sounds/Glass.aiff"


def _ps_quote(text: str) -> str:
    """Single-quoted PowerShell literal; embedded quotes are doubled."""
    return "'" + text.replace("'", "''") + "'"


class DesktopSinks(HostSinks):
    """Sinks that drive the local desktop session."""

    def __init__(self, live_activity_file: Optional[Path] = None):
        self.live_activity_file = Path(live_activity_file or config.LIVE_ACTIVITY_FILE)
        self._speech_process: Optional[subprocess.Popen] = None
        self._speech_thread: Optional[threading.Thread] = None
        self._tts_engine = None
        self._tts_unavailable = False
        self._tts_lock = threading.Lock()
        self._inhibit_process: Optional[subprocess.Popen] = None
        self._alert_timers: Dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def haptic(self) -> None:
        self._play_sound(_MACOS_WARNING_SOUND, "SystemExclamation")

    def success_feedback(self) -> None:
        self._play_sound(_MACOS_SUCCESS_SOUND, "SystemAsterisk")

    def _play_sound(self, macos_sound: str, windows_alias: str) -> None:
        if sys.platform == "darwin":
            self._spawn(["afplay", macos_sound])
        elif sys.platform == "win32":
            try:
                import winsound
                winsound.PlaySound(windows_alias, winsound.SND_ALIAS | winsound.SND_ASYNC)
            except Exception as e:
                logger.debug(f"winsound failed: {e}")
        else:
            # Terminal bell is the only feedback guaranteed on Linux
            sys.stdout.write("\a")
            sys.stdout.flush()

    def speak(self, phrase: str) -> None:
        """Speak phrase, cutting off any warning still being spoken."""
        if sys.platform == "darwin":
            with self._lock:
                if self._speech_process and self._speech_process.poll() is None:
                    self._speech_process.terminate()
                self._speech_process = self._spawn(["say", "-r", str(config.SPEECH_RATE), phrase])
            return

        engine = self._get_tts_engine()
        if engine is None:
            return
        try:
            engine.stop()
        except Exception as e:
            logger.debug(f"Could not interrupt speech: {e}")

        # runAndWait() blocks, so each phrase gets its own worker
        self._speech_thread = threading.Thread(
            target=self._run_tts, args=(engine, phrase), name="SpeechWorker", daemon=True
        )
        self._speech_thread.start()

    def _get_tts_engine(self):
        """Initialise the pyttsx3 engine once; None if no driver is available."""
        with self._lock:
            if self._tts_engine is None and not self._tts_unavailable:
                try:
                    engine = pyttsx3.init()
                    engine.setProperty("rate", config.SPEECH_RATE)
                    self._tts_engine = engine
                except Exception as e:
                    self._tts_unavailable = True
                    logger.warning(f"Speech synthesis unavailable - spoken warnings disabled: {e}")
            return self._tts_engine

    def _run_tts(self, engine, phrase: str) -> None:
        with self._tts_lock:
            try:
                engine.say(phrase)
                engine.runAndWait()
            except Exception as e:
                logger.warning(f"Speech synthesis failed: {e}")

    # ------------------------------------------------------------------
    # Deferred alerts
    # ------------------------------------------------------------------

    def schedule_alert(self, identifier: str, title: str, body: str, delay_seconds: float) -> None:
        timer = threading.Timer(max(0.0, delay_seconds), self._fire_alert, args=(identifier, title, body))
        timer.daemon = True
        with self._lock:
            previous = self._alert_timers.pop(identifier, None)
            if previous:
                previous.cancel()
            self._alert_timers[identifier] = timer
        timer.start()
        logger.debug(f"Alert '{identifier}' scheduled in {delay_seconds:.0f}s")

    def cancel_alerts(self) -> None:
        with self._lock:
            timers = list(self._alert_timers.values())
            self._alert_timers.clear()
        for timer in timers:
            timer.cancel()

    def _fire_alert(self, identifier: str, title: str, body: str) -> None:
        with self._lock:
            self._alert_timers.pop(identifier, None)

        if sys.platform == "darwin":
            script = f'display notification {json.dumps(body)} with title {json.dumps(title)} sound name "Glass"'
            self._spawn(["osascript", "-e", script])
        elif sys.platform == "win32":
            self._spawn([
                "powershell", "-c",
                f"[System.Reflection.Assembly]::LoadWithPartialName('System.Windows.Forms') | Out-Null; "
                f"[System.Windows.Forms.MessageBox]::Show({_ps_quote(body)}, {_ps_quote(title)})",
            ])
        elif shutil.which("notify-send"):
            self._spawn(["notify-send", title, body])
        else:
            logger.info(f"{title} {body}")

    # ------------------------------------------------------------------
    # Live status display
    # ------------------------------------------------------------------

    def start_live_activity(self, snapshot: LiveActivitySnapshot) -> None:
        self._write_snapshot(snapshot)

    def update_live_activity(self, snapshot: LiveActivitySnapshot) -> None:
        self._write_snapshot(snapshot)

    def end_live_activity(self, session_id: str) -> None:
        try:
            if self.live_activity_file.exists():
                current = json.loads(self.live_activity_file.read_text())
                if current.get("session_id") not in (None, session_id):
                    return
                self.live_activity_file.unlink()
        except (OSError, ValueError, AttributeError) as e:
            logger.debug(f"Could not remove live activity file: {e}")

    def _write_snapshot(self, snapshot: LiveActivitySnapshot) -> None:
        """Write the snapshot atomically so readers never see a partial file."""
        self.live_activity_file.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(
            suffix='.tmp', prefix='live_activity_', dir=self.live_activity_file.parent
        )
        try:
            with os.fdopen(temp_fd, 'w') as f:
                json.dump(snapshot.to_dict(), f)
            os.replace(temp_path, self.live_activity_file)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    # ------------------------------------------------------------------
    # Idle sleep
    # ------------------------------------------------------------------

    def set_idle_sleep_suppressed(self, suppressed: bool) -> None:
        with self._lock:
            running = self._inhibit_process is not None and self._inhibit_process.poll() is None
            if suppressed and not running:
                self._inhibit_process = self._spawn(self._inhibit_command())
            elif not suppressed and running:
                self._inhibit_process.terminate()
                self._inhibit_process = None

    @staticmethod
    def _inhibit_command() -> Optional[List[str]]:
        if sys.platform == "darwin":
            return ["caffeinate", "-d", "-w", str(os.getpid())]
        if sys.platform.startswith("linux") and shutil.which("systemd-inhibit"):
            return [
                "systemd-inhibit", "--what=idle", f"--who={config.APP_NAME}",
                "--why=Focus session running", "sleep", "infinity",
            ]
        logger.debug("Idle sleep suppression not supported on this platform")
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _spawn(command: Optional[List[str]]) -> Optional[subprocess.Popen]:
        if not command:
            return None
        try:
            kwargs = {}
            if sys.platform == "win32":
                kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW
            return subprocess.Popen(
                command, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, **kwargs
            )
        except (OSError, ValueError) as e:
            logger.warning(f"Could not run {command[0]}: {e}")
            return None
