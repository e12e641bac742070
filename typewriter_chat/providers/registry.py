"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：在代码里使用的统一名称，例如 "chat"。
- provider_model：厂商实际提供的模型 ID，例如 "mistralai/mistral-7b-instruct"。

上层只关心逻辑名，具体用哪个底层模型、采样参数是多少由这里集中配置。"""

from dataclasses import dataclass
from typing import Dict


@dataclass
class ModelConfig:
    """单个逻辑模型的配置（即请求体中的采样参数）。"""

    logical_name: str
    provider_model: str
    max_tokens: int
    default_temperature: float
    top_p: float = 1.0
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]


OPENROUTER_CONFIG = ProviderConfig(
    name="openrouter",
    base_url="https://openrouter.ai/api/v1",
    models={
        "chat": ModelConfig(
            logical_name="chat",
            provider_model="mistralai/mistral-7b-instruct",
            max_tokens=2000,
            default_temperature=0.7,
        )
    },
)


def get_model_config(provider: ProviderConfig, model: str) -> ModelConfig:
    """按逻辑名查找模型配置；未注册的名字视为厂商模型 ID 直接透传。"""

    if model in provider.models:
        return provider.models[model]
    default = next(iter(provider.models.values()))
    return ModelConfig(
        logical_name=model,
        provider_model=model,
        max_tokens=default.max_tokens,
        default_temperature=default.default_temperature,
        top_p=default.top_p,
        frequency_penalty=default.frequency_penalty,
        presence_penalty=default.presence_penalty,
    )
