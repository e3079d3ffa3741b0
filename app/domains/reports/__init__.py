from . import api, models, service

router = api.router
