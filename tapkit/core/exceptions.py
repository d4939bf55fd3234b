"""统一异常体系

所有业务异常继承 TapkitError。每个异常携带 code（日志/JSON 输出用）
和 exit_code（CLI 退出码），CLI 层据此直接映射，无需逐类判断。

退出码约定:
  0  安装成功（含依赖缺失告警）
  1  冒烟测试未通过
  2  下载 / 校验和 / 归档错误
  3  文件系统写入错误（含源文件缺失）
  4  配置或公式错误
"""

from __future__ import annotations


class TapkitError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"
    exit_code: int = 1

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(TapkitError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"
    exit_code = 4


class ValidationError(TapkitError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"
    exit_code = 4

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class FormulaNotFoundError(TapkitError):
    """公式目录中不存在指定的包"""

    code = "FORMULA_NOT_FOUND"
    exit_code = 4


class FormulaNotInstalledError(TapkitError):
    """包未安装（找不到安装回执）"""

    code = "NOT_INSTALLED"
    exit_code = 4


class NetworkError(TapkitError):
    """下载传输失败"""

    code = "NETWORK_ERROR"
    exit_code = 2


class IntegrityError(TapkitError):
    """归档校验和不匹配，始终致命"""

    code = "INTEGRITY_ERROR"
    exit_code = 2

    def __init__(self, message: str, expected: str = "", actual: str = "") -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class ArchiveError(TapkitError):
    """归档无法解包"""

    code = "ARCHIVE_ERROR"
    exit_code = 2


class MissingSourceFileError(TapkitError):
    """安装动作声明的源文件不在归档中"""

    code = "MISSING_SOURCE"
    exit_code = 3

    def __init__(self, message: str, source: str = "") -> None:
        super().__init__(message)
        self.source = source


class WriteError(TapkitError):
    """目标路径无法创建或写入（权限、磁盘满等）"""

    code = "WRITE_ERROR"
    exit_code = 3


class InstallCancelledError(TapkitError):
    """用户中止安装"""

    code = "CANCELLED"
    exit_code = 130


class MissingDependencyError(TapkitError):
    """声明的依赖在 PATH 中找不到（告警级，不抛出，只随结果返回）"""

    code = "MISSING_DEPENDENCY"
    exit_code = 0

    def __init__(self, message: str, dependency: str = "") -> None:
        super().__init__(message)
        self.dependency = dependency
