# -*- coding: utf-8 -*-
"""监控管理器 (MonitoringManager) 的主实现文件。

为学习计划助手提供结构化日志（JSON 格式、按大小或时间轮转）
以及可选的 Prometheus 指标记录（计划生成次数、AI 调用耗时等）
和 OpenTelemetry 分布式追踪。
"""
import json
import logging
import logging.handlers
from pathlib import Path
from typing import Any, Dict, Optional, Union

from study_planner.config_manager.config_manager import ConfigManager


class StructuredJsonFormatter(logging.Formatter):
    """
    将日志记录格式化为单行 JSON，context 中的键会提升为顶级字段。
    """

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
            "lineno": record.lineno,
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        context = getattr(record, "context", None)
        if context:
            if isinstance(context, dict):
                log_record.update(context)
            else:
                log_record["context"] = str(context)
        return json.dumps(log_record, ensure_ascii=False, default=str)


class MonitoringManager:
    """
    统一管理日志与指标。各模块通过 log_* 方法记录日志，通过 record_metric 记录指标。
    """

    def __init__(self, config_manager: ConfigManager, logger_name: str = "study_planner"):
        """
        Args:
            config_manager: ConfigManager 实例，用于读取 monitoring.* 配置。
            logger_name: 使用的 logger 名称。
        """
        self.config_manager = config_manager
        self.logger = logging.getLogger(logger_name)
        self.metrics: Dict[str, Any] = {}
        self._prometheus_enabled = False

        self._setup_logging()
        self._setup_prometheus()
        self._setup_opentelemetry()

        self.logger.info("MonitoringManager initialized.")

    def _setup_logging(self):
        """根据 monitoring.logging.* 配置设置 logger 的级别与 handler。"""
        log_enabled = self.config_manager.get_config("monitoring.logging.enabled", True)
        log_level_str = self.config_manager.get_config("monitoring.logging.level", "INFO")
        log_level = getattr(logging, str(log_level_str).upper(), logging.INFO)

        self.logger.setLevel(log_level)
        self.logger.propagate = False
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)

        if not log_enabled:
            self.logger.addHandler(logging.NullHandler())
            return

        structured_json = self.config_manager.get_config("monitoring.logging.structured_json", True)
        formatter = (
            StructuredJsonFormatter()
            if structured_json
            else logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

        if self.config_manager.get_config("monitoring.logging.console", False):
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

        log_filepath_str = self.config_manager.get_config(
            "monitoring.logging.filepath", "logs/study_planner.log"
        )
        if not log_filepath_str:
            return

        rotation_config = self.config_manager.get_config("monitoring.logging.rotation", {})
        if not isinstance(rotation_config, dict):
            rotation_config = {}

        log_filepath = Path(log_filepath_str)
        log_filepath.parent.mkdir(parents=True, exist_ok=True)

        handler: Union[
            logging.handlers.RotatingFileHandler,
            logging.handlers.TimedRotatingFileHandler,
            logging.FileHandler,
        ]
        rotation_type = str(rotation_config.get("type", "size")).lower()
        if rotation_type == "size":
            handler = logging.handlers.RotatingFileHandler(
                log_filepath,
                maxBytes=rotation_config.get("max_bytes", 1024 * 1024 * 10),
                backupCount=rotation_config.get("backup_count", 5),
                encoding="utf-8",
            )
        elif rotation_type == "time":
            handler = logging.handlers.TimedRotatingFileHandler(
                log_filepath,
                when=rotation_config.get("when", "D"),
                interval=rotation_config.get("interval", 1),
                backupCount=rotation_config.get("backup_count", 7),
                encoding="utf-8",
            )
        else:
            handler = logging.FileHandler(log_filepath, encoding="utf-8")

        handler.setFormatter(formatter)
        self.logger.addHandler(handler)

    def _log(
        self,
        level: int,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        exc_info=None,
        **kwargs,
    ):
        """通用日志方法，context 与 kwargs 合并后作为 extra["context"] 传入。"""
        extra_info = {}
        if context:
            extra_info.update(context)
        if kwargs:
            extra_info.update(kwargs)

        if extra_info:
            self.logger.log(level, message, exc_info=exc_info, extra={"context": extra_info})
        else:
            self.logger.log(level, message, exc_info=exc_info)

    def log_debug(self, message: str, context: Optional[Dict[str, Any]] = None, **kwargs):
        self._log(logging.DEBUG, message, context, **kwargs)

    def log_info(self, message: str, context: Optional[Dict[str, Any]] = None, **kwargs):
        self._log(logging.INFO, message, context, **kwargs)

    def log_warning(self, message: str, context: Optional[Dict[str, Any]] = None, **kwargs):
        self._log(logging.WARNING, message, context, **kwargs)

    def log_error(self, message: str, context: Optional[Dict[str, Any]] = None, exc_info=None, **kwargs):
        self._log(logging.ERROR, message, context, exc_info=exc_info, **kwargs)

    def log_exception(self, message: str, context: Optional[Dict[str, Any]] = None, **kwargs):
        """记录异常信息（附带当前堆栈）。"""
        self._log(logging.ERROR, message, context, exc_info=True, **kwargs)

    def _setup_prometheus(self):
        """monitoring.prometheus.enabled 为真时启动 Prometheus 指标 HTTP 服务。"""
        if not self.config_manager.get_config("monitoring.prometheus.enabled", False):
            return

        from prometheus_client import start_http_server

        port = self.config_manager.get_config("monitoring.prometheus.port", 9091)
        try:
            start_http_server(port)
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server on port {port}: {e}")
            return
        self._prometheus_enabled = True
        self.logger.info(f"Prometheus metrics server started on port {port}.")

    def record_metric(
        self,
        metric_name: str,
        value: float,
        metric_type: str = "gauge",
        tags: Optional[Dict[str, str]] = None,
        description: str = "",
    ):
        """
        记录一个指标。metric_type 为 'gauge'、'counter' 或 'histogram'。
        Prometheus 未启用时只写一条 debug 日志。
        """
        if not self._prometheus_enabled:
            self.log_debug(
                f"Metric {metric_name}={value}",
                context={"metric_name": metric_name, "value": value, "tags": tags, "type": metric_type},
            )
            return

        from prometheus_client import Counter, Gauge, Histogram

        label_names = sorted(tags.keys()) if tags else []
        metric_key = f"{metric_name}_{'_'.join(label_names)}"
        metric_type = metric_type.lower()

        if metric_key not in self.metrics:
            doc = description or f"{metric_type.capitalize()} metric: {metric_name}"
            metric_cls = {"counter": Counter, "histogram": Histogram}.get(metric_type, Gauge)
            self.metrics[metric_key] = metric_cls(metric_name, doc, label_names)

        metric_obj = self.metrics[metric_key]
        if label_names:
            metric_obj = metric_obj.labels(**{k: str(tags[k]) for k in label_names})

        if metric_type == "counter":
            metric_obj.inc(value)
        elif metric_type == "histogram":
            metric_obj.observe(value)
        else:
            metric_obj.set(value)

    def _setup_opentelemetry(self):
        """monitoring.opentelemetry.enabled 为真时初始化分布式追踪。"""
        self.tracer = None
        if not self.config_manager.get_config("monitoring.opentelemetry.enabled", False):
            return

        from opentelemetry import trace
        from opentelemetry.sdk.resources import SERVICE_NAME, Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

        service_name = self.config_manager.get_config("monitoring.opentelemetry.service_name", "study_planner")
        exporter_type = str(self.config_manager.get_config("monitoring.opentelemetry.exporter_type", "console")).lower()
        otlp_endpoint = self.config_manager.get_config("monitoring.opentelemetry.otlp_endpoint")

        if exporter_type == "otlp_http" and otlp_endpoint:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

            exporter = OTLPSpanExporter(endpoint=otlp_endpoint)
        else:
            if exporter_type != "console":
                self.logger.warning(
                    f"OpenTelemetry exporter '{exporter_type}' unusable (otlp_endpoint={otlp_endpoint}). "
                    "Using console exporter."
                )
            exporter = ConsoleSpanExporter()

        provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))
        provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(provider)
        self.tracer = trace.get_tracer(__name__)
        self.logger.info(f"OpenTelemetry tracing initialized. Service: {service_name}, Exporter: {exporter_type}")

    def start_span(self, span_name: str, attributes: Optional[Dict[str, Any]] = None):
        """开始一个追踪 Span；追踪未启用时返回 None。"""
        if not self.tracer:
            return None
        return self.tracer.start_span(span_name, attributes=attributes)

    def end_span(self, span: Optional[Any], exc: Optional[Exception] = None):
        """结束 Span，exc 不为空时记录异常并标记为错误。"""
        if span is None:
            return

        from opentelemetry import trace

        if exc is not None:
            span.record_exception(exc)
            span.set_status(trace.Status(trace.StatusCode.ERROR, str(exc)))
        else:
            span.set_status(trace.Status(trace.StatusCode.OK))
        span.end()
