from harvest_api.main import run

run()
