"""领域层模型与异常。

包含：
- models: ConversationTurn / RevealEvent / RevealState 等统一模型。
- exceptions: 业务异常类型定义（code 即对外暴露的错误类型）。
"""
