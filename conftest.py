"""
Общие настройки тестов: config.settings требует BOT_TOKEN при импорте
"""
import os

os.environ.setdefault('BOT_TOKEN', '123456:TEST-TOKEN')
os.environ.setdefault('DISPLAY_TIMEZONE', 'Europe/Moscow')
