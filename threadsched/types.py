# threadsched/types.py
from __future__ import annotations

from typing import NewType


# ID-шники / имена
NodeName = NewType("NodeName", str)
PodId = NewType("PodId", str)  # "<namespace>/<name>"
Namespace = NewType("Namespace", str)

# Ресурсы
CpuMillis = NewType("CpuMillis", int)  # milliCPU
