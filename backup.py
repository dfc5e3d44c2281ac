import os
import subprocess
import sys
import tempfile
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

import config
import notifier

CONFIG_PATH_ENV = "BACKUP_CONFIG"
MYSQLDUMP = "mysqldump"


class BackupError(Exception):
    """Base class for failures inside a single database's pipeline."""


class TempDirError(BackupError):
    pass


class DumpError(BackupError):
    pass


class WriteError(BackupError):
    pass


class UploadError(BackupError):
    pass


def backup_file_name(database: str, now: Optional[datetime] = None) -> str:
    timestamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    return f"{database}-{timestamp}.sql"


def _escape_option(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def create_s3_client(s3_config: config.S3Config):
    session = boto3.session.Session()
    return session.client(
        service_name="s3",
        endpoint_url=s3_config.endpoint,
        region_name=s3_config.region,
    )


class Backuper:
    def __init__(self, cfg: config.BackupConfig, s3_client, notification: notifier.Notifier, temp_root: Optional[str] = None):
        self._config = cfg
        self._s3 = s3_client
        self._notifier = notification
        self._temp_root = temp_root

    def run(self) -> None:
        for database in self._config.database.databases:
            file_name = backup_file_name(database)
            try:
                self._backup_and_upload(database, file_name)
            except BackupError as e:
                print(f"Backup Error: {database}: {e}")
                self._notifier.send_error(database, file_name, e)
            else:
                self._notifier.send_success(database, file_name)

    def _backup_and_upload(self, database: str, file_name: str) -> None:
        with self._create_db_dump(database, file_name) as dump_path:
            self._upload_to_s3(file_name, dump_path)

    @contextmanager
    def _create_db_dump(self, database: str, file_name: str) -> Iterator[str]:
        # Temp dir, dump and credentials file are all removed on exit
        try:
            temp_dir = tempfile.TemporaryDirectory(prefix="backup", dir=self._temp_root)
        except OSError as e:
            raise TempDirError(f"failed to create temp directory: {e}") from e

        try:
            with temp_dir as temp_path:
                print(f"MySQL: Creating dump of {database}...")
                auth_config_path = self._write_auth_config(temp_path)

                cmd = [
                    MYSQLDUMP,
                    f"--defaults-extra-file={auth_config_path}",
                    "-u", self._config.database.user,
                    "-h", self._config.database.host,
                    "-P", str(self._config.database.port),
                    database,
                ]
                try:
                    result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL, check=True)
                except subprocess.CalledProcessError as e:
                    raise DumpError(f"failed to execute mysqldump: exit status {e.returncode}") from e
                except OSError as e:
                    raise DumpError(f"failed to execute mysqldump: {e}") from e

                dump_path = os.path.join(temp_path, file_name)
                try:
                    with open(dump_path, "wb") as f:
                        f.write(result.stdout)
                except OSError as e:
                    raise WriteError(f"failed to write backup file: {e}") from e

                print(f"MySQL: Dump created at {dump_path}")
                yield dump_path
        finally:
            print(f"Cleanup: Removed {temp_dir.name}")

    def _write_auth_config(self, temp_path: str) -> str:
        auth_config_path = os.path.join(temp_path, "mysql_auth.cnf")
        try:
            fd = os.open(auth_config_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w") as f:
                f.write("[client]\n")
                f.write(f'password="{_escape_option(self._config.database.password)}"\n')
        except OSError as e:
            raise WriteError(f"failed to write mysql credentials file: {e}") from e
        return auth_config_path

    def _upload_to_s3(self, file_name: str, file_path: str) -> None:
        key = self._config.s3_key(file_name)
        print(f"S3: Uploading {key} to bucket: {self._config.s3.bucket_name}")
        try:
            f = open(file_path, "rb")
        except OSError as e:
            raise UploadError(f"failed to open file: {e}") from e

        with f:
            try:
                self._s3.put_object(Bucket=self._config.s3.bucket_name, Key=key, Body=f)
            except (BotoCoreError, ClientError) as e:
                raise UploadError(f"failed to upload file to S3: {e}") from e
        print("S3: Upload successful!")


def main():
    try:
        cfg = config.load_config(os.environ, os.environ.get(CONFIG_PATH_ENV))
    except config.ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    discord = notifier.DiscordNotifier(cfg.discord)
    try:
        s3_client = create_s3_client(cfg.s3)
    except (BotoCoreError, ValueError) as e:
        print(f"S3 Error: {e}")
        discord.notify("Failed to create AWS session", e)
        sys.exit(1)

    Backuper(cfg, s3_client, discord).run()
    print("Done.")


if __name__ == "__main__":
    main()
