"""
Helpers importable by every plugin.

    from plugin_util import run_in_background, every

Everything started through these helpers is stopped when the plugin is
unloaded, through the plugin's cleanup registrar.
"""

import threading


def run_in_background(registrar, target, name=None):
    """
    Run ``target(stop_event)`` in a daemon thread.

    The stop event is set and the thread joined when the plugin is unloaded.
    ``target`` should return soon after the event is set.
    """
    stop_event = threading.Event()
    thread = threading.Thread(target=target, args=(stop_event,), name=name, daemon=True)

    def stop():
        stop_event.set()
        if thread is not threading.current_thread():
            thread.join(timeout=5.0)

    registrar.on_unload(stop)
    thread.start()
    return stop_event


def every(registrar, interval, action, name=None):
    """Call ``action()`` every ``interval`` seconds until the plugin is unloaded."""

    def loop(stop_event):
        while not stop_event.wait(interval):
            action()

    return run_in_background(registrar, loop, name=name)
