# -*- coding: utf-8 -*-
"""记忆库管理模块 (MemoryBankManager)。

持有应用的全部状态（考试、知识点、任务、计划、复习记录、设置），
并通过 SQLite 键值存储整体持久化。
"""
from .state_store import DEFAULT_STORAGE_KEY, StateStore
from .storage import KeyValueStorage

__all__ = ["DEFAULT_STORAGE_KEY", "KeyValueStorage", "StateStore"]
