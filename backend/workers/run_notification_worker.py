from common.workers.launcher import WorkerLauncher
from packages.notifications.workers.notification_dispatch_worker import (
    NotificationDispatchWorker,
)

if __name__ == "__main__":
    WorkerLauncher().run(
        worker_factory=NotificationDispatchWorker,
        worker_name="Notification Dispatch Worker",
    )
