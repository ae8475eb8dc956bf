from taskreminders.logger import setup_logging, logger
from taskreminders.config.settings import *
setup_logging(
    log_level=LOG_LEVEL,
    log_file=LOG_FILE,
    console_level="INFO",
)

import asyncio
import signal

from taskreminders.admin.http_server import main_loop as admin_http_main
from taskreminders.config.reminder_config import load_reminder_config
from taskreminders.dispatch.desktop import DesktopNotifier
from taskreminders.dispatch.dispatcher import NotificationDispatcher
from taskreminders.dispatch.webhook import HttpWebhookSink
from taskreminders.world.assignee import DeviceRecipientFilter
from taskreminders.world.reminder import NotificationScheduler
import taskreminders.storage.db_config as db_config
import taskreminders.storage.person as person_storage
import taskreminders.storage.task as task_storage

shutdown_event = asyncio.Event()


def signal_handler(sig, frame):
    """处理 SIGINT / SIGTERM 信号"""
    logger.info("收到中断信号,正在依次关闭组件...")
    shutdown_event.set()


def _open_task(path: str) -> None:
    logger.info(f"用户点击了通知, 打开任务: {path}")


def _create_dispatcher(settings: SchedulerSettings, resolver) -> NotificationDispatcher:
    webhook = None
    if WEBHOOK_URL:
        webhook = HttpWebhookSink(WEBHOOK_URL, WEBHOOK_SHARED_SECRET, WEBHOOK_TIMEOUT_SECONDS)
    else:
        logger.warning("未配置 WEBHOOK_URL, Webhook 通道已禁用")

    return NotificationDispatcher(
        resolver=resolver,
        notifier=DesktopNotifier(app_name=settings.app_name),
        webhook=webhook,
        settings=settings,
        on_open_task=_open_task,
    )


async def main():
    # 注册信号处理器
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    reminder_config = load_reminder_config(REMINDER_CONFIG_FILE)
    await db_config.init_db(DB_PATH)

    settings = SchedulerSettings()
    resolver = reminder_config.build_resolver()
    dispatcher = _create_dispatcher(settings, resolver)

    scheduler = None
    if ENABLE_NOTIFICATIONS:
        scheduler = NotificationScheduler(
            task_store=task_storage,
            rule_engine=reminder_config.build_rule_engine(resolver),
            resolver=resolver,
            dispatcher=dispatcher,
            recipient_filter=DeviceRecipientFilter(
                current_user=CURRENT_USER,
                filter_by_assignment=FILTER_BY_ASSIGNMENT,
                include_unassigned=INCLUDE_UNASSIGNED_TASKS,
                assignee_field=ASSIGNEE_FIELD_NAME,
            ),
            person_source=await person_storage.load_person_directory(),
            settings=settings,
        )
    else:
        logger.warning("提醒通知已禁用 (ENABLE_NOTIFICATIONS=false)")

    try:
        tasks = [admin_http_main(shutdown_event, scheduler)]
        if scheduler is not None:
            tasks.append(scheduler.run(shutdown_event))
        await asyncio.gather(*tasks)
    finally:
        logger.info("关闭 TaskReminders...")
        await dispatcher.aclose()

        logger.info("关闭数据库连接...")
        await db_config.close_db()
        logger.info("TaskReminders 已关闭")


def run() -> None:
    logger.info("启动 TaskReminders...")
    asyncio.run(main())


if __name__ == "__main__":
    run()
