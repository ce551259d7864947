"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
        Path(__file__).resolve().parents[1] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class PydanticSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 生成服务（Gemini） ----
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API 密钥")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini REST API 基础URL",
    )
    default_model: str = Field(
        default="chat",
        description="逻辑模型名，由 registry 映射为具体厂商模型",
    )
    max_output_tokens: int = Field(default=1000, ge=1, description="单次回答的最大输出 token 数")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="采样温度")
    safety_threshold: str = Field(
        default="BLOCK_MEDIUM_AND_ABOVE",
        description="骚扰/仇恨言论两类内容的拦截阈值",
    )

    # ---- 外部存储与身份（Supabase） ----
    supabase_url: Optional[str] = Field(default=None, description="Supabase 项目 URL")
    supabase_anon_key: Optional[str] = Field(default=None, description="Supabase anon key")
    messages_table: str = Field(default="messages", description="保存对话的表名")

    # ---- Relay ----
    relay_url: str = Field(
        default="http://127.0.0.1:8000/api/chat",
        description="客户端调用的 relay 地址",
    )
    relay_host: str = Field(default="127.0.0.1", description="relay 服务监听地址")
    relay_port: int = Field(default=8000, ge=1, le=65535, description="relay 服务监听端口")

    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 持久化重试 ----
    persist_max_retries: int = Field(default=3, ge=0, le=10, description="写入失败后的最大重试次数")
    persist_backoff_base: float = Field(default=0.5, ge=0.0, description="首次重试等待（秒）")
    persist_backoff_max: float = Field(default=8.0, ge=0.0, description="单次重试等待上限（秒）")

    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("gemini_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @field_validator("supabase_url", "gemini_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        return v.rstrip("/") if v else v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = PydanticSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = PydanticSettings
