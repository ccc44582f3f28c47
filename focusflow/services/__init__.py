# services/__init__.py

"""
Сервисы FocusFlow: AI генерация, экспорт/импорт, таймер, прогресс, планировщик
"""
