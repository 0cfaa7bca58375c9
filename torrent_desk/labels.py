"""
标签匹配模块

按标签列表的定义顺序逐个尝试名称过滤规则，第一个命中的标签获胜。
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Pattern, Sequence

from .config import LabelConfig
from .models import NO_LABEL, LabelAssignment, LabelMap, TorrentDescriptor


class LabelMatcher:
    """有序规则匹配器

    - 跳过未启用过滤或过滤规则为空的标签
    - 使用不区分大小写的 ``re.search``（子串语义，而非全匹配）
    - 非法正则只记录一次警告，视为该标签未命中，继续下一个标签
    """

    def __init__(self, labels: Sequence[LabelConfig]):
        self.labels: List[LabelConfig] = list(labels)
        self.logger = logging.getLogger('LabelMatcher')
        self._compiled: Dict[int, Optional[Pattern]] = {}

    def _pattern_for(self, label: LabelConfig) -> Optional[Pattern]:
        if label.id in self._compiled:
            return self._compiled[label.id]

        try:
            pattern = re.compile(label.apply_filter, re.IGNORECASE)
        except re.error as e:
            self.logger.warning(f"标签 '{label.name}' 的过滤规则无效 ({label.apply_filter!r}): {e}")
            pattern = None

        self._compiled[label.id] = pattern
        return pattern

    def match(self, name: str) -> LabelAssignment:
        """返回名称对应的标签，最多一个"""
        if not name:
            return NO_LABEL

        for label in self.labels:
            if not label.apply_filter_enabled or not label.apply_filter:
                continue

            pattern = self._pattern_for(label)
            if pattern is None or not pattern.search(name):
                continue

            save_path = None
            if label.save_path_enabled and label.save_path:
                save_path = label.save_path

            self.logger.debug(f"'{name}' 匹配标签 '{label.name}' (id={label.id})")
            return LabelAssignment(label_id=label.id, save_path=save_path)

        return NO_LABEL

    def match_descriptor(self, descriptor: TorrentDescriptor) -> LabelAssignment:
        return self.match(descriptor.derived_name)

    def get_label(self, label_id: Optional[int]) -> Optional[LabelConfig]:
        if label_id is None:
            return None
        for label in self.labels:
            if label.id == label_id:
                return label
        return None


def label_map(labels: Iterable[LabelConfig]) -> LabelMap:
    """标签ID到 (名称, 颜色) 的映射，供显示层使用"""
    return {label.id: (label.name, label.color) for label in labels}


__all__ = ["LabelMatcher", "label_map"]
