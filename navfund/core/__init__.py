"""
Core: доменные модели, арифметика, ошибки, конфигурация и контракты.

Модули этого пакета не зависят от внешних коллабораторов
(площадка, примитив токенов, источник цен).
"""
