"""统一异常体系

所有构建异常继承 PhaseForgeError，每个子类带一个稳定的 code。
Web 层据此映射 HTTP 状态码，CLI 层据此输出友好提示并以非零状态退出。
所有异常对所在构建都是致命的，框架内部不做自动重试。
"""

from __future__ import annotations


class PhaseForgeError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(PhaseForgeError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(PhaseForgeError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class PackageNotFoundError(PhaseForgeError):
    """指定的包未在任何配方模块中定义"""

    code = "PACKAGE_NOT_FOUND"


class SourceUnavailable(PhaseForgeError):
    """源码清单或快照无法获取（不回退为"包含全部文件"）"""

    code = "SOURCE_UNAVAILABLE"


class PhaseOverrideConflict(PhaseForgeError):
    """阶段覆盖引用了不存在的阶段、插入了重名阶段，或对同一阶段重复覆盖"""

    code = "PHASE_OVERRIDE_CONFLICT"


class ExecutionError(PhaseForgeError):
    """外部命令返回非零退出码"""

    code = "EXECUTION_ERROR"

    def __init__(self, message: str, returncode: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class PhaseExecutionFailure(PhaseForgeError):
    """构建阶段执行失败，整条流水线中止"""

    code = "PHASE_EXECUTION_FAILURE"

    def __init__(
        self,
        message: str,
        *,
        package: str = "",
        phase: str = "",
        returncode: int | None = None,
        detail: str = "",
    ) -> None:
        super().__init__(message)
        self.package = package
        self.phase = phase
        self.returncode = returncode
        self.detail = detail


class OutputMappingUnresolved(PhaseForgeError):
    """消费者请求了生产者未声明（或尚未产出）的输出"""

    code = "OUTPUT_MAPPING_UNRESOLVED"


class ArtifactMissing(OutputMappingUnresolved):
    """约定产物不存在或从未声明"""

    code = "ARTIFACT_MISSING"


class OutputSplitConflict(PhaseForgeError):
    """拆分时两个文件落到同一输出的同一路径"""

    code = "OUTPUT_SPLIT_CONFLICT"


class PruneTargetMissing(PhaseForgeError):
    """组装时要求删除的路径在拷贝结果中不存在"""

    code = "PRUNE_TARGET_MISSING"


class BuildStateError(PhaseForgeError):
    """非法的构建状态迁移"""

    code = "BUILD_STATE_ERROR"
