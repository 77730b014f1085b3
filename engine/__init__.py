"""会话与轮询层（engine）。

`WatchSession` 持有全部可变状态，`QuotePoller` 负责按固定间隔喂入行情；
命令行入口由仓库根目录 `main.py` 统一承载。
"""
