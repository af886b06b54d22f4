"""pkgsolver - 客户端包管理核心：依赖解析与安装操作规划"""

__version__ = "2.1.0"
