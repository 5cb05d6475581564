# -*- coding: utf-8 -*-

import typing as T

T_RECORD = T.Dict[str, T.Any]
T_PROGRESS_STATE = T.Dict[str, T.Any]
