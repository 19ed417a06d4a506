def init(registrar):
    raise RuntimeError("boom")
