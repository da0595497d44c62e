import csv
import os
import threading
import time

# Security audit trail (login, lockout, logout, CSRF rejections) as CSV.
# Disabled when no file is configured.

HEADERS = ["timestamp", "app", "event_type", "client_ip", "outcome", "detail"]

_lock = threading.Lock()


class AuditLog:
    def __init__(self, path: str, app_kind: str):
        self.path = path
        self.app_kind = app_kind

    def log_event(self, event_type: str, client_ip: str, outcome: str, detail: str = ""):
        if not self.path:
            return

        with _lock:
            new_file = not os.path.exists(self.path)
            with open(self.path, "a", newline="") as f:
                writer = csv.writer(f)
                if new_file:
                    writer.writerow(HEADERS)
                writer.writerow([time.time(), self.app_kind, event_type, client_ip, outcome, detail])
