import asyncio

import pytest

from taskreminders.dispatch.desktop import DesktopNotifier
from taskreminders.errors import DispatchError

MISSING = "taskreminders-no-such-notify-command"


def test_command_carries_tag_hints():
    notifier = DesktopNotifier(app_name="App", urgency="shouting")
    cmd = notifier._build_command("App Reminder", "Report is due date now", "ns-a.md-r1", with_action=False)

    assert cmd[0] == "notify-send"
    assert "--urgency=normal" in cmd
    assert "--hint=string:x-dunst-stack-tag:ns-a.md-r1" in cmd
    assert "--wait" not in cmd
    assert cmd[-2:] == ["App Reminder", "Report is due date now"]


def test_click_action_waits_for_result():
    cmd = DesktopNotifier(app_name="App")._build_command("t", "", "tag", with_action=True)
    assert "--action=default=Open" in cmd
    assert "--wait" in cmd
    assert cmd[-1] == "t"


def test_missing_command_is_not_granted_and_raises():
    notifier = DesktopNotifier(app_name="App", command=MISSING)
    assert not notifier.permission_granted()

    with pytest.raises(DispatchError) as exc_info:
        asyncio.run(notifier.notify("t", "b", "tag"))
    assert exc_info.value.channel == "system"


class _WaitingProcess:
    """模拟一直停在 --wait 的 notify-send"""

    def __init__(self):
        self.returncode = None
        self.killed = False
        self._exited = asyncio.Event()

    async def communicate(self):
        await self._exited.wait()
        return b"", b""

    def kill(self):
        self.killed = True
        self.returncode = -9
        self._exited.set()

    async def wait(self):
        await self._exited.wait()
        return self.returncode


def test_close_kills_processes_still_waiting_for_click():
    notifier = DesktopNotifier(app_name="App")
    proc = _WaitingProcess()
    clicks = []

    async def scenario():
        notifier._watch_clicks(proc, "ns-a.md-r1", lambda: clicks.append(1))
        await asyncio.sleep(0)
        await notifier.aclose()

    asyncio.run(scenario())
    assert proc.killed
    assert clicks == []
    assert not notifier._click_watchers


def test_click_on_waiting_notification_runs_callback():
    notifier = DesktopNotifier(app_name="App")
    proc = _WaitingProcess()
    clicks = []

    async def clicked():
        return b"default\n", b""

    proc.communicate = clicked

    async def scenario():
        await notifier._watch_clicks(proc, "ns-a.md-r1", lambda: clicks.append(1))

    asyncio.run(scenario())
    assert clicks == [1]
    assert not proc.killed
