"""
tabwright 配置模块
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """会话配置（环境变量前缀 TABWRIGHT_）"""

    # 控制端点
    cdp_host: str = Field(default="localhost", description="DevTools 控制端点主机")
    cdp_port: int = Field(default=19000, description="DevTools 控制端点端口 (--remote-debugging-port)")
    control_timeout: float = Field(default=5.0, description="控制端点 HTTP 请求超时（秒）")
    connect_timeout: float = Field(default=15.0, description="Playwright connect_over_cdp 超时（秒）")

    # 解析 / 动作
    settle_delay: float = Field(default=0.5, description="解析页面前的等待时间（秒）")
    default_wait_ms: int = Field(default=30000, description="wait 动作默认超时（毫秒）")
    navigation_timeout_ms: int = Field(default=30000, description="导航超时（毫秒）")

    # 下载
    download_timeout: float = Field(default=30.0, description="等待下载事件的超时（秒）")
    download_dir: str = Field(default="/tmp/tabwright/downloads", description="下载文件保存目录")

    # 事件捕获
    capture_buffer_size: int = Field(default=1000, description="每个标签页 console/network 缓冲区最大条数")

    # 日志
    log_level: str = Field(default="INFO", description="日志级别")

    model_config = {
        "env_prefix": "TABWRIGHT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def control_url(self) -> str:
        """控制端点根 URL"""
        return f"http://{self.cdp_host}:{self.cdp_port}"

    @property
    def download_path(self) -> Path:
        """下载目录路径"""
        return Path(self.download_dir)


# 全局配置实例
settings = Settings()
