from arena_trader.main import run

run()
