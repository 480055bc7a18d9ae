"""InternHub: moteur de prix et cycle de vie des inscriptions / paiements."""
