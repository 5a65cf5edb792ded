"""imagerunner - 系统镜像内的测试执行代理

在一次性虚拟机/容器镜像内运行：读取注入目录中的作业配置，
解析测试方案 (scheme) 驱动，依次执行任务并把报告上传到支撑服务器。
"""

__version__ = "0.11.0"
