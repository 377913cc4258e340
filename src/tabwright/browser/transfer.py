"""
TransferCoordinator - 文件上传 / 下载

arm_upload:     挂一次性 filechooser 监听，下一次选择文件对话框出现时填入给定路径
await_download: 挂一次性 download 监听，保存到下载目录并返回路径，超时抛 DownloadTimeout
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..core.errors import ActionFailed, DownloadTimeout

if TYPE_CHECKING:
    from .resolver import PageResolver

logger = logging.getLogger(__name__)


class TransferCoordinator:
    def __init__(self, resolver: PageResolver, download_dir: Path, download_timeout: float = 30.0):
        self._resolver = resolver
        self._download_dir = Path(download_dir)
        self._download_timeout = download_timeout

    async def arm_upload(self, target_id: str, file_paths: list[str]) -> None:
        page = await self._resolver.resolve(target_id, action="upload")
        paths = [str(p) for p in file_paths]

        async def _on_file_chooser(chooser: Any) -> None:
            try:
                await chooser.set_files(paths)
                logger.info(f"[Transfer] Files uploaded for {target_id}: {paths}")
            except Exception as e:
                logger.error(f"[Transfer] Upload into file chooser failed for {target_id}: {e}")

        page.once("filechooser", _on_file_chooser)
        logger.info(f"[Transfer] File chooser armed for {target_id}")

    async def await_download(self, target_id: str, save_as: str | None = None) -> Path:
        page = await self._resolver.resolve(target_id, action="download")
        self._download_dir.mkdir(parents=True, exist_ok=True)

        loop = asyncio.get_running_loop()
        arrived: asyncio.Future = loop.create_future()

        def _on_download(download: Any) -> None:
            if not arrived.done():
                arrived.set_result(download)

        page.once("download", _on_download)
        try:
            download = await asyncio.wait_for(arrived, timeout=self._download_timeout)
        except asyncio.TimeoutError:
            page.remove_listener("download", _on_download)
            raise DownloadTimeout(
                f"no download within {self._download_timeout:g}s", target_id=target_id, action="download",
            ) from None

        filename = save_as or download.suggested_filename
        save_path = self._download_dir / filename
        try:
            await download.save_as(save_path)
        except Exception as e:
            raise ActionFailed(f"failed to save download: {e}", target_id=target_id, action="download") from e
        logger.info(f"[Transfer] Download saved: {save_path}")
        return save_path
