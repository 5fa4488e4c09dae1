from marketplace import create_app
from marketplace.models import *  # noqa

app = create_app()


if __name__ == '__main__':
    app.run()
