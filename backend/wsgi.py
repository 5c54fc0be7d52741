from vendsys import create_app

app = create_app()
