"""统一的对话与生成请求数据模型。

本模块定义了 relay 与客户端之间共享的标准数据结构：

- Turn: 一条对话消息（user/model）。
- GenerationRequest: 发给底层生成服务的完整请求（历史 + 新输入 + 生成参数）。
- StreamChunk: 生成服务流式返回的一个文本片段。
- Identity: 身份提供方给出的当前用户。

所有 Provider 适配器（如 GeminiClient）都只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional


# 对话角色（与 Gemini contents[].role 字段一致）
Role = Literal["user", "model"]
ROLES = ("user", "model")


@dataclass(frozen=True)
class Turn:
    """一条对话消息。一旦加入 Transcript 即不可变。"""

    role: Role
    text: str

    def to_payload(self) -> Dict[str, str]:
        return {"role": self.role, "text": self.text}

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Turn":
        return cls(role=data["role"], text=data.get("text") or "")


@dataclass(frozen=True)
class SafetySetting:
    category: str
    threshold: str


@dataclass
class GenerationRequest:
    """一次流式生成请求。

    history 是已完成的轮次（作为会话上下文），message 是本轮用户输入。
    Provider 适配层负责把本结构转换成各家 API 的 JSON 请求体。
    """

    model: str  # 逻辑模型名，如 "chat"（再由 registry 映射为真实模型名）
    history: List[Turn]
    message: str
    max_output_tokens: int = 1000
    temperature: float = 0.7
    safety_settings: List[SafetySetting] = field(default_factory=list)


@dataclass
class StreamUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class StreamChunk:
    """流式生成的一个增量。

    text 可能为空，也不保证在词或字符边界上切分。
    """

    provider: str
    model: str
    text: str
    finish_reason: Optional[str] = None
    usage: Optional[StreamUsage] = None
    raw: Optional[dict] = None


@dataclass(frozen=True)
class Identity:
    """当前登录用户。

    - id: 身份提供方给出的不透明 ID，用作存储查询条件。
    - email: 展示用标签。
    - access_token: 访问外部存储时使用的用户令牌（可为空，退化为 anon key）。
    """

    id: str
    email: str
    access_token: Optional[str] = field(default=None, repr=False, compare=False)

    @property
    def display_label(self) -> str:
        return self.email or self.id
