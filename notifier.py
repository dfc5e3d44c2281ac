from abc import ABC, abstractmethod
from typing import Optional

import requests

import config


class Notifier(ABC):
    @abstractmethod
    def notify(self, message: str, error: Optional[BaseException] = None, file_name: str = "") -> None:
        pass

    def send_success(self, database: str, file_name: str) -> None:
        self.notify(f"Backup successful for database: {database} (file: {file_name})", None, file_name)

    def send_error(self, database: str, file_name: str, error: BaseException) -> None:
        self.notify(f"Backup failed for database: {database} (file: {file_name})", error, file_name)


class DiscordNotifier(Notifier):
    def __init__(self, cfg: config.DiscordConfig):
        self._config = cfg

    def notify(self, message: str, error: Optional[BaseException] = None, file_name: str = "") -> None:
        content = message
        if error is not None:
            content = f"{message}: {error}"
        self._send(content)

    def _send(self, content: str):
        try:
            response = requests.post(self._config.webhook_url, data={"content": content})
        except requests.RequestException as e:
            print(f"Discord Error: Failed to send notification. {e}")
            return

        if response.status_code == 204:
            print("Discord: Notification sent.")
        elif response.status_code != 200:
            print(f"Discord Error: Failed to send notification, status: {response.status_code} {response.reason}")
