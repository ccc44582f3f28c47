"""
FocusFlow - локальный слой хранения и пересчета состояния
для личного помощника по целям, планам дня и фокусу
"""

__version__ = "1.0.0"
