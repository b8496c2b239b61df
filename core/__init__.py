"""
Core package for Unblurry.

Contains the AppContext (core.engine), the capture poller, the auto-end
watchdog, platform permission checks and the shared exceptions. Zero UI
dependencies.

Submodules are imported directly (``from core.engine import AppContext``);
tracking.session depends on core.capture_poller, so this package must not
import core.engine eagerly.
"""
