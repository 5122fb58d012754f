"""
Backend applicativo Studio Dentistico.

Struttura:
- config.py        : variabili d'ambiente (.env) e logging
- db.py            : engine e sessioni SQLAlchemy
- models.py        : modelli ORM e enum
- services.py      : medici, appuntamenti, agenda, promemoria WhatsApp
- pazienti.py      : anagrafica pazienti e saldo
- catalogo.py      : trattamenti, sotto-trattamenti, passi
- trattamenti.py   : registrazione e ripresa dei trattamenti
- piani.py         : piani di trattamento
- pagamenti.py     : pagamenti SYP/USD
- statistiche.py   : dashboard e statistiche di periodo
- permessi.py      : permessi per ruolo
- attivita.py      : log attività
- esportazione.py  : import/export Excel
- seed.py          : dati iniziali (medici, catalogo, permessi)
- cli.py           : comandi da terminale
- api_main.py      : API REST FastAPI + JWT
"""
