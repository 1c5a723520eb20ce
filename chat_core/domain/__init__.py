"""领域层模型与异常。

包含：
- models: Thread / Message / Edit / StreamState 以及交换状态枚举。
- exceptions: 业务异常与契约违规异常定义。
"""
