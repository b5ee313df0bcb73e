"""Built-in CLI sub-commands for deskauth.

* :mod:`~deskauth.commands.login` -- run one browser login and print the
  session object.
* :mod:`~deskauth.commands.config` -- view and modify saved settings.

``login`` is a plain callback registered directly on the root app;
``config`` is a :class:`typer.Typer` sub-application.
"""
