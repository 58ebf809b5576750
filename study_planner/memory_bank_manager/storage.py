# -*- coding: utf-8 -*-
"""
键值持久化模块 (KeyValueStorage)

基于 SQLite 的简单键值存储。状态存储把整个应用状态序列化为一个 JSON 文档，
以固定的存储键整体读写。
"""
import os
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from study_planner.monitoring_manager.monitoring_manager import MonitoringManager


class KeyValueStorage:
    """封装 kv_store 表读写的工具类。"""

    def __init__(self, db_path: str, monitoring_manager: MonitoringManager):
        """
        初始化 KeyValueStorage。

        Args:
            db_path (str): 数据库文件的路径，可以是 ":memory:"。
            monitoring_manager (MonitoringManager): 监控管理器实例。
        """
        self.db_path = db_path
        self.monitoring_manager = monitoring_manager
        self._db_connection: Optional[sqlite3.Connection] = None
        self._ensure_db_directory()
        self._connect_db()
        self._initialize_database()

    def _ensure_db_directory(self):
        """确保数据库文件所在的目录存在。"""
        if self.db_path == ":memory:":
            return
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            try:
                os.makedirs(db_dir)
                self.monitoring_manager.log_info(f"Created database directory: {db_dir}")
            except OSError as e:
                self.monitoring_manager.log_error(
                    f"Failed to create database directory {db_dir}: {e}", exc_info=True
                )
                raise OSError(f"Failed to create database directory {db_dir}") from e

    def _connect_db(self):
        """建立数据库连接。失败时抛出 ConnectionError。"""
        if self._db_connection:
            self.close_connection()

        try:
            self._db_connection = sqlite3.connect(self.db_path, check_same_thread=False)
            self.monitoring_manager.log_info(f"Successfully connected to database: {self.db_path}")
        except sqlite3.Error as e:
            self.monitoring_manager.log_error(
                f"Error connecting to database {self.db_path}: {e}", exc_info=True
            )
            self._db_connection = None
            raise ConnectionError(f"Failed to connect to database: {e}") from e

    def _initialize_database(self):
        """创建 kv_store 表（如果不存在）。失败时抛出 RuntimeError。"""
        create_kv_store_table = """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL -- ISO 8601 format
        );
        """
        try:
            with self._db_connection:
                self._db_connection.execute(create_kv_store_table)
            self.monitoring_manager.log_info("Database table kv_store checked/created successfully.")
        except sqlite3.Error as e:
            self.monitoring_manager.log_error(f"Error initializing database tables: {e}", exc_info=True)
            raise RuntimeError(f"Failed to initialize database tables: {e}") from e

    def _require_connection(self) -> sqlite3.Connection:
        if not self._db_connection:
            self.monitoring_manager.log_warning("Database connection is not available. Reconnecting...")
            self._connect_db()
        return self._db_connection

    def get(self, key: str) -> Optional[str]:
        """读取 key 对应的值；不存在或读取失败时返回 None。"""
        try:
            row = self._require_connection().execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            self.monitoring_manager.log_error(f"Database error reading key '{key}': {e}", exc_info=True)
            return None
        return row[0] if row else None

    def put(self, key: str, value: str) -> bool:
        """写入（或覆盖）key 的值。成功返回 True，失败回滚并返回 False。"""
        connection = self._require_connection()
        try:
            with connection:
                connection.execute(
                    "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                    (key, value, self.get_current_timestamp_iso()),
                )
        except sqlite3.Error as e:
            self.monitoring_manager.log_error(f"Database error writing key '{key}': {e}", exc_info=True)
            return False
        return True

    def delete(self, key: str) -> bool:
        connection = self._require_connection()
        try:
            with connection:
                connection.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as e:
            self.monitoring_manager.log_error(f"Database error deleting key '{key}': {e}", exc_info=True)
            return False
        return True

    def get_current_timestamp_iso(self) -> str:
        """返回当前的 UTC ISO 8601 格式时间戳。"""
        return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    def close_connection(self):
        """关闭数据库连接。"""
        if self._db_connection:
            try:
                self._db_connection.close()
                self.monitoring_manager.log_info(f"Database connection to {self.db_path} closed.")
            except sqlite3.Error as e:
                self.monitoring_manager.log_error(f"Error closing database connection: {e}", exc_info=True)
            finally:
                self._db_connection = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_connection()
