"""Reading objects from Git packfiles and their indexes."""