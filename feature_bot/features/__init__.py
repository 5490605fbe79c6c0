"""Встроенные обработчики функций: модуль на каждый id с create_handler()"""
