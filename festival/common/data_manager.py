"""
数据管理器 - 使用 JSON 文件存储市场快照

整个市场（配置、股票、账户）保存为一个 JSON 快照。启动时读取一次；
保存通常由 ``SnapshotWriter`` 驱动，它会合并短时间内的多次保存请求。
"""
from pathlib import Path
import json
import logging
from typing import Optional, Dict, Any

import aiofiles

logger = logging.getLogger(__name__)


class DataManager:
    """
    数据管理器 - JSON 快照存储

    用法:
        dm = DataManager(base_path=Path("data"))
        snapshot = dm.load_snapshot()          # 文件缺失或损坏时返回 None
        dm.save_snapshot(snapshot)

        # 异步方法（推荐，防止阻塞事件循环）
        await dm.async_save_snapshot(snapshot)
    """

    def __init__(self, base_path: Optional[Path] = None, state_file: str = "state.json"):
        if base_path:
            self.root = Path(base_path)
        else:
            self.root = Path(__file__).resolve().parents[2] / "data"

        self.root.mkdir(parents=True, exist_ok=True)
        self.state_path = self.root / state_file

    # ========== 同步方法 ==========
    def load_snapshot(self) -> Optional[Dict[str, Any]]:
        """读取快照，文件不存在或解析失败时返回 None"""
        p = self.state_path
        if not p.exists():
            return None
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("无法读取快照 %s: %s", p, e)
            return None
        if not isinstance(data, dict):
            logger.warning("快照格式错误 %s", p)
            return None
        return data

    def save_snapshot(self, data: Dict[str, Any]):
        """同步保存快照"""
        content = json.dumps(data, ensure_ascii=False, indent=2)
        tmp = self.state_path.with_suffix(".tmp")
        tmp.write_text(content, encoding="utf-8")
        tmp.replace(self.state_path)

    # ========== 异步方法 ==========
    async def async_save_snapshot(self, data: Dict[str, Any]):
        """异步保存快照"""
        content = json.dumps(data, ensure_ascii=False, indent=2)
        tmp = self.state_path.with_suffix(".tmp")
        try:
            async with aiofiles.open(tmp, 'w', encoding='utf-8') as f:
                await f.write(content)
            tmp.replace(self.state_path)
        except OSError as e:
            raise RuntimeError(f"保存快照失败: {e}")

    def get_data_path(self) -> Path:
        """获取数据根目录"""
        return self.root
