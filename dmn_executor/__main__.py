from dmn_executor.main import run

run()
