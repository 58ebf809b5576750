# -*- coding: utf-8 -*-
"""考试学习计划助手主应用程序。

负责初始化和协调各个核心模块（配置、监控、状态存储、大模型接口、
规划与薄弱点分析），并作为 API 网关的后端逻辑处理单元。
"""
from typing import List, Optional, Sequence

import uvicorn

from study_planner.config_manager.config_manager import ConfigManager
from study_planner.exceptions import EntityNotFoundError
from study_planner.llm_interface.llm_interface import LLMInterface
from study_planner.memory_bank_manager.state_store import DEFAULT_STORAGE_KEY, ExamSnapshot, StateStore
from study_planner.memory_bank_manager.storage import KeyValueStorage
from study_planner.models import DEFAULT_DAILY_STUDY_MINUTES, AIConfig, Exam, StudyTask, UserSettings
from study_planner.monitoring_manager.monitoring_manager import MonitoringManager
from study_planner.planner_module.ai_planner import AIPlanner
from study_planner.planner_module.quick_planner import quick_adjust, quick_decompose
from study_planner.dates import DateLike
from study_planner.weakness_analyzer.weakness_analyzer import (TestQuestion, TestResult,
                                                               WeaknessAnalysis, WeaknessAnalyzer)

PLAN_MODES = ("quick", "ai")


class StudyPlannerApp:
    """
    Main application class to initialize and wire up all backend modules.
    """

    def __init__(self, config_dir: Optional[str] = None, storage: Optional[KeyValueStorage] = None):
        """
        Args:
            config_dir: 配置目录，None 时使用 ConfigManager 的默认位置（项目根目录）。
            storage: 可选的持久化后端，None 时按 storage.db_path 打开 SQLite 数据库。
        """
        self.config_manager = ConfigManager(config_dir=config_dir)
        self.monitoring_manager = MonitoringManager(self.config_manager)

        if storage is None:
            db_path = self.config_manager.get_config("storage.db_path", "data/study_planner.db")
            storage = KeyValueStorage(db_path, self.monitoring_manager)
        self.storage = storage

        default_settings = UserSettings(
            daily_study_minutes=self.config_manager.get_config(
                "planner.daily_study_minutes", DEFAULT_DAILY_STUDY_MINUTES
            )
        )
        self.state_store = StateStore(
            self.storage,
            self.monitoring_manager,
            storage_key=self.config_manager.get_config("storage.key", DEFAULT_STORAGE_KEY),
            default_settings=default_settings,
        )

        self.llm_interface = LLMInterface(
            self.config_manager, ai_config=self.state_store.get_settings().ai_config
        )
        self.ai_planner = AIPlanner(self.llm_interface, self.monitoring_manager)
        self.weakness_analyzer = WeaknessAnalyzer(self.llm_interface, self.monitoring_manager)
        self.monitoring_manager.log_info("StudyPlannerApp initialized.")

    def _require_exam(self, exam_id: str) -> Exam:
        exam = self.state_store.get_exam(exam_id)
        if exam is None:
            raise EntityNotFoundError("Exam", exam_id)
        return exam

    @staticmethod
    def _check_mode(mode: str) -> None:
        if mode not in PLAN_MODES:
            raise ValueError(f"Unsupported plan mode: {mode}")

    def generate_plan(self, exam_id: str, mode: str = "quick", today: Optional[DateLike] = None) -> List[StudyTask]:
        """
        为考试生成学习任务并替换该考试已有的任务。

        Args:
            exam_id: 考试 id。
            mode: "quick" 使用规则拆解，"ai" 使用 AI 拆解。
            today: 计算基准日，默认为今天。
        """
        self._check_mode(mode)

        def decompose(snapshot: ExamSnapshot) -> List[StudyTask]:
            if mode == "ai":
                return self.ai_planner.decompose_tasks(
                    snapshot.exam, snapshot.knowledge_points, snapshot.daily_study_minutes, today=today
                )
            return quick_decompose(snapshot.exam, snapshot.knowledge_points, snapshot.daily_study_minutes, today=today)

        tasks = self.state_store.rewrite_exam_tasks(exam_id, decompose)
        self.monitoring_manager.log_info(
            f"Generated {len(tasks)} tasks for exam {exam_id}",
            context={"module": "StudyPlannerApp", "mode": mode},
        )
        return tasks

    def adjust_plan(
        self,
        exam_id: str,
        mode: str = "quick",
        reason: str = "",
        today: Optional[DateLike] = None,
    ) -> List[StudyTask]:
        """调整考试的现有任务。quick 模式只顺延过期任务，ai 模式由 AI 重新安排。"""
        self._check_mode(mode)

        def adjust(snapshot: ExamSnapshot) -> Optional[Sequence[StudyTask]]:
            if mode == "ai":
                adjusted = self.ai_planner.adjust_plan(
                    snapshot.exam, snapshot.tasks, snapshot.daily_study_minutes, reason=reason, today=today
                )
            else:
                adjusted = quick_adjust(snapshot.tasks, snapshot.daily_study_minutes, today=today)
            return None if adjusted is snapshot.tasks else adjusted

        tasks = self.state_store.rewrite_exam_tasks(exam_id, adjust)
        if tasks is None:
            return self.state_store.get_tasks_by_exam(exam_id)
        return tasks

    def analyze_weakness(
        self,
        exam_id: str,
        results: Sequence[TestResult],
        questions: Sequence[TestQuestion],
        save: bool = True,
    ) -> WeaknessAnalysis:
        """分析自测结果；save 为 True 时把识别出的薄弱点加入该考试的知识点。"""
        exam = self._require_exam(exam_id)
        analysis = self.weakness_analyzer.analyze(exam_id, exam.subject, results, questions)
        if save and analysis.weak_points:
            self.state_store.add_knowledge_points([wp.knowledge_point for wp in analysis.weak_points])
        return analysis

    def update_settings(self, **changes) -> UserSettings:
        settings = self.state_store.update_settings(**changes)
        if "ai_config" in changes:
            self.llm_interface.configure(settings.ai_config)
        return settings

    def set_ai_config(self, config: Optional[AIConfig]) -> UserSettings:
        settings = self.state_store.set_ai_config(config)
        self.llm_interface.configure(settings.ai_config)
        return settings

    def run_gateway(self, host: Optional[str] = None, port: Optional[int] = None):
        """启动 API 网关（阻塞调用）。"""
        from study_planner.api_gateway.gateway import APIGateway

        host = host or self.config_manager.get_config("api.host", "127.0.0.1")
        port = port or self.config_manager.get_config("api.port", 8000)
        gateway_app = APIGateway(self).get_fastapi_app()
        self.monitoring_manager.log_info(f"Starting API Gateway server on {host}:{port}")
        try:
            uvicorn.run(gateway_app, host=host, port=port, log_level="info")
        finally:
            self.storage.close_connection()


def main():
    StudyPlannerApp().run_gateway()


if __name__ == "__main__":
    main()
