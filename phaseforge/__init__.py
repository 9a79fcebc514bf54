"""phaseforge - 基于构建阶段的声明式打包编排器"""

__version__ = "0.1.0"
